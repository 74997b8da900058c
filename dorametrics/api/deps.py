"""Dependency injection — session, per-app service container, and background tasks."""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncGenerator, Awaitable, Callable, Coroutine
from dataclasses import dataclass
from typing import Any

import structlog
from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from dorametrics.dao.commit_dao import CommitDAO
from dorametrics.dao.deployment_dao import DeploymentDAO
from dorametrics.dao.dora_metric_dao import DoraMetricDAO
from dorametrics.dao.pull_request_dao import PullRequestDAO
from dorametrics.dao.team_dao import TeamDAO
from dorametrics.engines.circleci_sync.runner import CircleCISyncRunner
from dorametrics.engines.github_sync.runner import GitHubSyncRunner
from dorametrics.services.ingest_service import IngestService
from dorametrics.services.metrics_service import MetricsService
from dorametrics.services.team_service import TeamService

log = structlog.get_logger("dorametrics.api")

# Upper bound of the INTEGER primary keys.
TEAM_ID_MAX = 2**31 - 1

# ---------------------------------------------------------------------------
# Service container (one per app, stored on app.state.services)
# ---------------------------------------------------------------------------


@dataclass
class Services:
    team: TeamService
    metrics: MetricsService
    github_runner: GitHubSyncRunner
    circleci_runner: CircleCISyncRunner


def build_services() -> Services:
    """Wire DAOs into services and runners."""
    team_dao = TeamDAO()
    deployment_dao = DeploymentDAO()
    team = TeamService(team_dao)
    ingest = IngestService(CommitDAO(), PullRequestDAO(), deployment_dao)
    return Services(
        team=team,
        metrics=MetricsService(team_dao, deployment_dao, DoraMetricDAO()),
        github_runner=GitHubSyncRunner(team, ingest),
        circleci_runner=CircleCISyncRunner(team, ingest),
    )


# ---------------------------------------------------------------------------
# Engine / session factory (initialised by app lifespan)
# ---------------------------------------------------------------------------
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_session_factory(database_url: str | None = None) -> async_sessionmaker[AsyncSession]:
    """Create the async engine and session factory. Called once at startup."""
    global _engine, _session_factory  # noqa: PLW0603
    url = database_url or os.environ.get(
        "DORAMETRICS_DATABASE_URL", "postgresql+asyncpg://localhost/dorametrics"
    )
    _engine = create_async_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_recycle=1800,
    )
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _session_factory


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("call init_session_factory() first")
    return _engine


async def dispose_engine() -> None:
    """Dispose the async engine, closing all pooled connections."""
    global _engine  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None


def set_session_factory(factory: async_sessionmaker[AsyncSession] | None) -> None:
    """Override session factory (for testing)."""
    global _session_factory  # noqa: PLW0603
    _session_factory = factory


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("call init_session_factory() before handling requests")
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a per-request session with automatic commit/rollback."""
    async with get_session_factory()() as session:
        async with session.begin():
            yield session


async def check_database() -> bool:
    """Run ``SELECT 1``; False when the database cannot be reached."""
    if _session_factory is None:
        return False
    try:
        async with _session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        log.warning("health.db_unreachable", error=str(exc))
        return False
    return True


def summary_lookup(metrics: MetricsService) -> Callable[[int], Awaitable[dict]]:
    """Build the WebSocket hub's summary callback; each call opens its own session."""

    async def _summary(team_id: int, days: int = 30) -> dict:
        async with get_session_factory()() as session:
            async with session.begin():
                return await metrics.get_summary(session, team_id, days)

    return _summary


# ---------------------------------------------------------------------------
# Detached background tasks
# ---------------------------------------------------------------------------
_background_tasks: set[asyncio.Task[Any]] = set()


def spawn_background(coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
    """Start *coro* detached from the request; the outcome is only logged."""
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_on_background_done)
    return task


def _on_background_done(task: asyncio.Task[Any]) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        log.warning("background.cancelled", task=task.get_name())
        return
    exc = task.exception()
    if exc is not None:
        log.error("background.failed", task=task.get_name(), error=str(exc), exc_info=exc)
    else:
        log.info("background.done", task=task.get_name())


async def cancel_background_tasks() -> None:
    """Cancel in-flight background tasks and wait for them (shutdown)."""
    tasks = list(_background_tasks)
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


# ---------------------------------------------------------------------------
# Service getters (for Depends())
# ---------------------------------------------------------------------------


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_team_service(request: Request) -> TeamService:
    return get_services(request).team


def get_metrics_service(request: Request) -> MetricsService:
    return get_services(request).metrics


def get_github_runner(request: Request) -> GitHubSyncRunner:
    return get_services(request).github_runner


def get_circleci_runner(request: Request) -> CircleCISyncRunner:
    return get_services(request).circleci_runner
