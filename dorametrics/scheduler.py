"""Scheduler — periodic GitHub/CircleCI sync and daily metric refresh."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable
from datetime import date

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dorametrics.engines.circleci_sync.circleci_client import CircleCIClient
from dorametrics.engines.circleci_sync.runner import CircleCISyncRunner
from dorametrics.engines.github_sync.github_client import GitHubClient
from dorametrics.engines.github_sync.runner import GitHubSyncRunner
from dorametrics.services.metrics_service import MetricsService, utc_today
from dorametrics.services.team_service import TeamService

logger = structlog.get_logger(__name__)


class EngineLoop:
    """Single engine scheduling loop with trigger/timeout wake mechanism."""

    def __init__(
        self,
        name: str,
        run_fn: Callable[[], Awaitable[int]],
        interval: float,
        downstream: asyncio.Event | None = None,
        *,
        trigger: asyncio.Event | None = None,
        run_on_start: bool = False,
    ) -> None:
        self.name = name
        self.run_fn = run_fn
        self.interval = interval
        self.trigger = trigger or asyncio.Event()
        self.downstream = downstream
        self.run_on_start = run_on_start

    async def loop(self) -> None:
        """Run the engine forever, waking on trigger or after *interval* seconds."""
        while True:
            try:
                await asyncio.wait_for(self.trigger.wait(), timeout=self.interval)
                self.trigger.clear()
            except asyncio.TimeoutError:
                pass

            try:
                processed = await self.run_fn()
                logger.info("engine.cycle", engine=self.name, processed=processed)
                if processed > 0 and self.downstream is not None:
                    self.downstream.set()
            except Exception:
                logger.exception("engine.error", engine=self.name)


class Scheduler:
    """Manages lifecycle of all EngineLoop tasks."""

    def __init__(self, loops: list[EngineLoop]) -> None:
        self._loops = loops
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def loops(self) -> list[EngineLoop]:
        return list(self._loops)

    async def start(self) -> None:
        """Start all loops as asyncio tasks and kick the ``run_on_start`` ones."""
        self._tasks = [
            asyncio.create_task(loop.loop(), name=f"engine-{loop.name}") for loop in self._loops
        ]
        for loop in self._loops:
            if loop.run_on_start:
                loop.trigger.set()
        logger.info("scheduler.started", engines=[loop.name for loop in self._loops])

    async def stop(self) -> None:
        """Cancel all loops and wait for them to exit."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("scheduler.stopped")


def _env_float(key: str, default: float) -> float:
    return float(os.environ.get(key, default))


async def compute_today_for_all_teams(
    session_factory: async_sessionmaker[AsyncSession],
    team_service: TeamService,
    metrics_service: MetricsService,
    *,
    today: date | None = None,
) -> int:
    """Recompute today's row for every team; returns how many succeeded.

    Each team runs in its own transaction; a failing team is logged and
    skipped.
    """
    today = today or utc_today()
    async with session_factory() as session:
        async with session.begin():
            team_ids = await team_service.list_ids(session)

    processed = 0
    for team_id in team_ids:
        try:
            async with session_factory() as session:
                async with session.begin():
                    await metrics_service.compute_daily_metrics(session, team_id, today)
            processed += 1
        except Exception:
            logger.exception("metrics.team_failed", team_id=team_id, date=today.isoformat())
    return processed


def create_scheduler(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    team_service: TeamService,
    metrics_service: MetricsService,
    github_runner: GitHubSyncRunner,
    github_client: GitHubClient,
    circleci_runner: CircleCISyncRunner,
    circleci_client: CircleCIClient,
) -> Scheduler:
    """Build a Scheduler where both sync loops feed the metrics loop."""

    github_interval = _env_float("DORAMETRICS_GITHUB_SYNC_INTERVAL", 300)
    circleci_interval = _env_float("DORAMETRICS_CIRCLECI_SYNC_INTERVAL", 300)
    metrics_interval = _env_float("DORAMETRICS_METRICS_INTERVAL", 600)

    trigger_metrics = asyncio.Event()

    # -- Adapter functions (closures over runners + session_factory) --

    async def _sync_github() -> int:
        results = await github_runner.run_all(session_factory, github_client)
        return len(results)

    async def _sync_circleci() -> int:
        results = await circleci_runner.run_all(session_factory, circleci_client)
        return len(results)

    async def _compute_metrics() -> int:
        return await compute_today_for_all_teams(session_factory, team_service, metrics_service)

    metrics_loop = EngineLoop(
        "metrics", _compute_metrics, metrics_interval, trigger=trigger_metrics
    )
    github_loop = EngineLoop(
        "github_sync",
        _sync_github,
        github_interval,
        downstream=trigger_metrics,
        run_on_start=True,
    )
    circleci_loop = EngineLoop(
        "circleci_sync",
        _sync_circleci,
        circleci_interval,
        downstream=trigger_metrics,
        run_on_start=True,
    )

    return Scheduler([github_loop, circleci_loop, metrics_loop])
