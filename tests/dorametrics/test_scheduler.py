"""Unit tests for EngineLoop, Scheduler and the metrics fan-out."""

from __future__ import annotations

import asyncio
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from dorametrics.scheduler import (
    EngineLoop,
    Scheduler,
    compute_today_for_all_teams,
    create_scheduler,
)


@pytest.fixture
def make_loop():
    """Factory for creating EngineLoop instances with a controllable run_fn."""

    def _make(
        *,
        name: str = "test",
        return_value: int = 0,
        interval: float = 100,
        downstream: asyncio.Event | None = None,
        side_effect: Exception | None = None,
        run_on_start: bool = False,
    ) -> tuple[EngineLoop, list[int]]:
        calls: list[int] = []

        async def run_fn() -> int:
            calls.append(1)
            if side_effect is not None:
                raise side_effect
            return return_value

        loop = EngineLoop(name, run_fn, interval, downstream=downstream, run_on_start=run_on_start)
        return loop, calls

    return _make


def _session_factory() -> MagicMock:
    """async_sessionmaker stand-in: ``async with factory() as s, s.begin()``."""
    session = MagicMock()
    tx = MagicMock()
    tx.__aenter__ = AsyncMock(return_value=tx)
    tx.__aexit__ = AsyncMock(return_value=False)
    session.begin = MagicMock(return_value=tx)

    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=session)
    ctx.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=ctx)


async def _wait_until(predicate, poll: float = 0.01):
    """Poll until predicate returns True."""
    while not predicate():
        await asyncio.sleep(poll)


# ── EngineLoop ────────────────────────────────────────────────────────────


async def test_loop_runs_on_timeout(make_loop):
    loop, calls = make_loop(interval=0.05)

    task = asyncio.create_task(loop.loop())
    try:
        await asyncio.wait_for(_wait_until(lambda: len(calls) >= 1), timeout=1.0)
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


async def test_loop_runs_on_trigger(make_loop):
    loop, calls = make_loop(interval=100)

    task = asyncio.create_task(loop.loop())
    try:
        await asyncio.sleep(0.01)
        loop.trigger.set()
        await asyncio.wait_for(_wait_until(lambda: len(calls) >= 1), timeout=1.0)
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


async def test_sync_with_results_wakes_metrics(make_loop):
    downstream = asyncio.Event()
    loop, _ = make_loop(return_value=2, downstream=downstream)

    task = asyncio.create_task(loop.loop())
    try:
        await asyncio.sleep(0.01)
        loop.trigger.set()
        await asyncio.wait_for(downstream.wait(), timeout=1.0)
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


async def test_empty_sync_leaves_metrics_asleep(make_loop):
    downstream = asyncio.Event()
    loop, calls = make_loop(return_value=0, downstream=downstream)

    task = asyncio.create_task(loop.loop())
    try:
        await asyncio.sleep(0.01)
        loop.trigger.set()
        await asyncio.wait_for(_wait_until(lambda: len(calls) >= 1), timeout=1.0)
        await asyncio.sleep(0.05)
        assert not downstream.is_set()
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


async def test_exception_does_not_crash(make_loop):
    loop, calls = make_loop(interval=0.05, side_effect=RuntimeError("boom"))

    task = asyncio.create_task(loop.loop())
    try:
        await asyncio.wait_for(_wait_until(lambda: len(calls) >= 2), timeout=2.0)
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


# ── Scheduler ─────────────────────────────────────────────────────────────


async def test_scheduler_start_stop(make_loop):
    loop1, calls1 = make_loop(name="a", interval=0.05)
    loop2, calls2 = make_loop(name="b", interval=0.05)

    scheduler = Scheduler([loop1, loop2])
    await scheduler.start()
    await asyncio.wait_for(
        _wait_until(lambda: len(calls1) >= 1 and len(calls2) >= 1), timeout=2.0
    )
    await scheduler.stop()

    assert scheduler._tasks == []


async def test_run_on_start_loops_fire_immediately(make_loop):
    eager, eager_calls = make_loop(name="eager", run_on_start=True)
    lazy, lazy_calls = make_loop(name="lazy")

    scheduler = Scheduler([eager, lazy])
    await scheduler.start()
    try:
        await asyncio.wait_for(_wait_until(lambda: len(eager_calls) >= 1), timeout=1.0)
        await asyncio.sleep(0.05)
        assert lazy_calls == []
    finally:
        await scheduler.stop()


class TestCreateScheduler:
    def test_loop_wiring(self, monkeypatch):
        monkeypatch.setenv("DORAMETRICS_METRICS_INTERVAL", "42")

        scheduler = create_scheduler(
            _session_factory(),
            team_service=MagicMock(),
            metrics_service=MagicMock(),
            github_runner=MagicMock(),
            github_client=MagicMock(),
            circleci_runner=MagicMock(),
            circleci_client=MagicMock(),
        )

        github, circleci, metrics = scheduler.loops
        assert [github.name, circleci.name, metrics.name] == [
            "github_sync",
            "circleci_sync",
            "metrics",
        ]
        assert github.downstream is metrics.trigger
        assert circleci.downstream is metrics.trigger
        assert github.run_on_start and circleci.run_on_start
        assert not metrics.run_on_start
        assert metrics.interval == 42.0
        assert github.interval == 300.0

    async def test_sync_loop_counts_synced_teams(self):
        github_runner = MagicMock()
        github_runner.run_all = AsyncMock(return_value=[object(), object()])
        factory = _session_factory()
        client = MagicMock()

        scheduler = create_scheduler(
            factory,
            team_service=MagicMock(),
            metrics_service=MagicMock(),
            github_runner=github_runner,
            github_client=client,
            circleci_runner=MagicMock(),
            circleci_client=MagicMock(),
        )

        assert await scheduler.loops[0].run_fn() == 2
        github_runner.run_all.assert_awaited_once_with(factory, client)


# ── compute_today_for_all_teams ───────────────────────────────────────────


class TestComputeTodayForAllTeams:
    async def test_every_team_computed(self):
        team_service = MagicMock()
        team_service.list_ids = AsyncMock(return_value=[1, 2, 3])
        metrics_service = MagicMock()
        metrics_service.compute_daily_metrics = AsyncMock()
        today = date(2024, 3, 10)

        processed = await compute_today_for_all_teams(
            _session_factory(), team_service, metrics_service, today=today
        )

        assert processed == 3
        computed = [c.args[1:] for c in metrics_service.compute_daily_metrics.await_args_list]
        assert computed == [(1, today), (2, today), (3, today)]

    async def test_failing_team_does_not_stop_others(self):
        team_service = MagicMock()
        team_service.list_ids = AsyncMock(return_value=[1, 2, 3])
        metrics_service = MagicMock()

        async def _compute(_session, team_id, _day):
            if team_id == 2:
                raise RuntimeError("store down")

        metrics_service.compute_daily_metrics = AsyncMock(side_effect=_compute)

        processed = await compute_today_for_all_teams(
            _session_factory(), team_service, metrics_service, today=date(2024, 3, 10)
        )

        assert processed == 2
        assert metrics_service.compute_daily_metrics.await_count == 3

    async def test_no_teams(self):
        team_service = MagicMock()
        team_service.list_ids = AsyncMock(return_value=[])
        metrics_service = MagicMock()
        metrics_service.compute_daily_metrics = AsyncMock()

        assert await compute_today_for_all_teams(
            _session_factory(), team_service, metrics_service
        ) == 0
        metrics_service.compute_daily_metrics.assert_not_awaited()
