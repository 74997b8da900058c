"""DORA metrics REST + WebSocket API — FastAPI application factory."""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dorametrics.api.deps import (
    Services,
    build_services,
    cancel_background_tasks,
    check_database,
    dispose_engine,
    get_engine,
    init_session_factory,
    summary_lookup,
)
from dorametrics.api.errors import register_error_handlers
from dorametrics.api.middleware.request_id import RequestIDMiddleware
from dorametrics.api.routers import metrics, sync, teams, ws
from dorametrics.api.websocket import WebSocketHub
from dorametrics.core.database import create_schema
from dorametrics.core.logging import setup_logging
from dorametrics.engines.circleci_sync.circleci_client import CircleCIClient
from dorametrics.engines.github_sync.github_client import GitHubClient
from dorametrics.scheduler import create_scheduler

log = structlog.get_logger("dorametrics.api")


def _env_flag(key: str, default: bool) -> bool:
    value = os.environ.get(key)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: DB, schema, default team, scheduler, heartbeat. Shutdown: reverse."""
    services: Services = app.state.services
    factory = init_session_factory()
    if _env_flag("DORAMETRICS_AUTO_CREATE_SCHEMA", True):
        await create_schema(get_engine())
    async with factory() as session:
        async with session.begin():
            await services.team.ensure_default_team(session)

    github_client = GitHubClient()
    circleci_client = CircleCIClient()
    scheduler = create_scheduler(
        factory,
        team_service=services.team,
        metrics_service=services.metrics,
        github_runner=services.github_runner,
        github_client=github_client,
        circleci_runner=services.circleci_runner,
        circleci_client=circleci_client,
    )
    hub: WebSocketHub = app.state.ws_hub

    await scheduler.start()
    await hub.start()
    log.info("app.started")
    try:
        yield
    finally:
        await hub.stop()
        await scheduler.stop()
        await cancel_background_tasks()
        await github_client.close()
        await circleci_client.close()
        await dispose_engine()
        log.info("app.stopped")


def create_app(services: Services | None = None) -> FastAPI:
    """Build the FastAPI application around *services* (wired fresh by default)."""
    load_dotenv()
    setup_logging()

    app = FastAPI(
        title="DORA Metrics",
        docs_url="/api/docs",
        openapi_url="/api/openapi.json",
        lifespan=_lifespan,
    )
    services = services or build_services()
    app.state.services = services
    app.state.ws_hub = WebSocketHub(summary_lookup(services.metrics))

    register_error_handlers(app)

    cors_origins = os.environ.get("DORAMETRICS_CORS_ORIGINS", "http://localhost:5173")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in cors_origins.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health", tags=["ops"])
    async def health() -> JSONResponse:
        timestamp = datetime.now(timezone.utc).isoformat()
        if await check_database():
            return JSONResponse({"status": "healthy", "timestamp": timestamp})
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "error": "Database connection failed",
                "timestamp": timestamp,
            },
        )

    app.include_router(teams.router, prefix="/api/teams", tags=["teams"])
    app.include_router(metrics.router, prefix="/api/metrics", tags=["metrics"])
    app.include_router(sync.router, prefix="/api/sync", tags=["sync"])
    app.include_router(ws.router)

    return app
