"""Sync router — start GitHub/CircleCI ingestion for a team in the background.

Each route returns right away; the sync and the 30-day recompute that
follows it run as a detached task whose outcome is only logged.
"""

from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dorametrics.api.deps import (
    TEAM_ID_MAX,
    get_circleci_runner,
    get_github_runner,
    get_metrics_service,
    get_session_factory,
    spawn_background,
)
from dorametrics.api.schemas.common import MessageResponse
from dorametrics.engines.circleci_sync.circleci_client import CircleCIClient
from dorametrics.engines.circleci_sync.runner import CircleCISyncRunner
from dorametrics.engines.github_sync.github_client import GitHubClient
from dorametrics.engines.github_sync.runner import GitHubSyncRunner
from dorametrics.services.metrics_service import MetricsService

router = APIRouter()

_log = structlog.get_logger("dorametrics.api")

RECALC_DAYS = 30


async def _github_job(
    factory: async_sessionmaker[AsyncSession], runner: GitHubSyncRunner, team_id: int
) -> None:
    async with GitHubClient() as client:
        async with factory() as session:
            async with session.begin():
                await runner.sync_team(session, team_id, client)


async def _circleci_job(
    factory: async_sessionmaker[AsyncSession], runner: CircleCISyncRunner, team_id: int
) -> None:
    async with CircleCIClient() as client:
        async with factory() as session:
            async with session.begin():
                await runner.sync_team(session, team_id, client)


async def _recalculate(
    factory: async_sessionmaker[AsyncSession], metrics: MetricsService, team_id: int
) -> None:
    async with factory() as session:
        async with session.begin():
            await metrics.recalculate_metrics(session, team_id, RECALC_DAYS)


@router.post("/github/{team_id}", response_model=MessageResponse)
async def sync_github(
    team_id: int = Path(..., ge=1, le=TEAM_ID_MAX),
    runner: GitHubSyncRunner = Depends(get_github_runner),
    metrics: MetricsService = Depends(get_metrics_service),
) -> MessageResponse:
    factory = get_session_factory()

    async def _job() -> None:
        await _github_job(factory, runner, team_id)
        _log.info("sync.github_done", team_id=team_id)
        await _recalculate(factory, metrics, team_id)

    spawn_background(_job(), name=f"sync-github-{team_id}")
    return MessageResponse(message="GitHub sync started")


@router.post("/circleci/{team_id}", response_model=MessageResponse)
async def sync_circleci(
    team_id: int = Path(..., ge=1, le=TEAM_ID_MAX),
    runner: CircleCISyncRunner = Depends(get_circleci_runner),
    metrics: MetricsService = Depends(get_metrics_service),
) -> MessageResponse:
    factory = get_session_factory()

    async def _job() -> None:
        await _circleci_job(factory, runner, team_id)
        _log.info("sync.circleci_done", team_id=team_id)
        await _recalculate(factory, metrics, team_id)

    spawn_background(_job(), name=f"sync-circleci-{team_id}")
    return MessageResponse(message="CircleCI sync started")


@router.post("/all/{team_id}", response_model=MessageResponse)
async def sync_all(
    team_id: int = Path(..., ge=1, le=TEAM_ID_MAX),
    github_runner: GitHubSyncRunner = Depends(get_github_runner),
    circleci_runner: CircleCISyncRunner = Depends(get_circleci_runner),
    metrics: MetricsService = Depends(get_metrics_service),
) -> MessageResponse:
    factory = get_session_factory()

    async def _job() -> None:
        # both sources in parallel, each in its own transaction
        await asyncio.gather(
            _github_job(factory, github_runner, team_id),
            _circleci_job(factory, circleci_runner, team_id),
        )
        _log.info("sync.all_done", team_id=team_id)
        await _recalculate(factory, metrics, team_id)

    spawn_background(_job(), name=f"sync-all-{team_id}")
    return MessageResponse(message="Full sync started")
