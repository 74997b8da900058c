"""MetricsService — daily DORA aggregation, range recompute, summaries and history.

Two definitions of the window figures coexist and both are kept as-is:

* Unfiltered summaries average the stored daily rows, so lead time is a
  mean of daily means and ``deployment_frequency`` is the mean daily count.
* Repository-filtered summaries cannot use the daily rows (they are stored
  across all repos), so they recompute from raw events over the whole
  window; there ``deployment_frequency`` is ``success_count / days``.

Dashboards read both through the same field names.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from dorametrics.dao.deployment_dao import DeploymentDAO
from dorametrics.dao.dora_metric_dao import DoraMetricDAO
from dorametrics.dao.team_dao import TeamDAO
from dorametrics.engines.dora_calculator import (
    DailyValues,
    DeploymentFact,
    LeadTimeSample,
    MetricValues,
    aggregate,
    aggregate_window,
    bucket_by_day,
    date_range,
    reduce_daily_rows,
    to_utc_date,
    trend_between,
    utc_day_window,
)
from dorametrics.models.dora_metric import DoraMetric
from dorametrics.models.team import Team
from dorametrics.services import TeamNotFoundError, ValidationError

log = structlog.get_logger("dorametrics.service")

DEFAULT_WINDOW_DAYS = 30
MAX_WINDOW_DAYS = 3650


@dataclass
class RecomputeResult:
    """Outcome of one range recompute."""

    team_id: int
    start: date
    end: date
    computed: list[date] = field(default_factory=list)
    failed_dates: list[date] = field(default_factory=list)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def normalize_repos(repos: Sequence[str] | None) -> list[str]:
    """Trim names and drop blanks; an empty result means "no filter"."""
    if not repos:
        return []
    return [r.strip() for r in repos if r and r.strip()]


class MetricsService:
    """Stateless service wrapping the DORA aggregation engine."""

    def __init__(
        self,
        team_dao: TeamDAO,
        deployment_dao: DeploymentDAO,
        dora_metric_dao: DoraMetricDAO,
    ) -> None:
        self._team_dao = team_dao
        self._deployment_dao = deployment_dao
        self._metric_dao = dora_metric_dao

    # ── daily aggregation ─────────────────────────────────────────────────

    async def compute_daily_metrics(
        self, session: AsyncSession, team_id: int, day: date | datetime
    ) -> DoraMetric:
        """Aggregate one UTC day of events for a team and upsert its row.

        Errors from the event store propagate unchanged.
        """
        day = to_utc_date(day)
        start, end = utc_day_window(day)
        deployments, samples = await self._load_facts(session, team_id, start, end)
        values = aggregate(deployments, samples)

        row = await self._metric_dao.upsert(session, team_id=team_id, day=day, **values.as_dict())
        log.info(
            "metrics.daily_computed",
            team_id=team_id,
            date=day.isoformat(),
            deployments=values.deployment_count,
            lead_time_samples=len(samples),
        )
        return row

    async def recompute_range(
        self,
        session: AsyncSession,
        team_id: int,
        start: date | datetime,
        end: date | datetime,
    ) -> RecomputeResult:
        """Recompute every day from *start* to *end* inclusive, oldest first.

        Each day runs inside its own SAVEPOINT: a failing day is rolled
        back, logged and reported in ``failed_dates`` while the remaining
        days still run. Raises :class:`TeamNotFoundError` up front.
        """
        await self._require_team(session, team_id)
        start, end = to_utc_date(start), to_utc_date(end)
        result = RecomputeResult(team_id=team_id, start=start, end=end)

        for day in date_range(start, end):
            try:
                async with session.begin_nested():
                    await self.compute_daily_metrics(session, team_id, day)
            except Exception:
                log.exception("metrics.day_failed", team_id=team_id, date=day.isoformat())
                result.failed_dates.append(day)
                continue
            result.computed.append(day)

        log.info(
            "metrics.range_computed",
            team_id=team_id,
            start=start.isoformat(),
            end=end.isoformat(),
            computed=len(result.computed),
            failed=len(result.failed_dates),
        )
        return result

    async def recalculate_metrics(
        self,
        session: AsyncSession,
        team_id: int,
        days: int = DEFAULT_WINDOW_DAYS,
        *,
        today: date | None = None,
    ) -> RecomputeResult:
        """Recompute ``[today - days, today]``."""
        _require_window_days(days)
        today = today or utc_today()
        return await self.recompute_range(session, team_id, today - timedelta(days=days), today)

    # ── summaries ─────────────────────────────────────────────────────────

    async def get_summary(
        self,
        session: AsyncSession,
        team_id: int,
        days: int = DEFAULT_WINDOW_DAYS,
        repos: Sequence[str] | None = None,
        *,
        today: date | None = None,
    ) -> dict:
        """Summarize the trailing *days* window with trends vs. the window before.

        Raises :class:`TeamNotFoundError` if the team does not exist.
        """
        _require_window_days(days)
        team = await self._require_team(session, team_id)
        today = today or utc_today()
        repos = normalize_repos(repos)

        cur_start = today - timedelta(days=days)
        prev_start = cur_start - timedelta(days=days)

        if repos:
            current = await self._window_from_events(
                session, team_id, cur_start, today + timedelta(days=1), days, repos
            )
            previous = await self._window_from_events(
                session, team_id, prev_start, cur_start, days, repos
            )
        else:
            current = reduce_daily_rows(
                await self._metric_dao.list_range(session, team_id, cur_start, today)
            )
            previous = reduce_daily_rows(
                await self._metric_dao.list_range(
                    session, team_id, prev_start, cur_start, include_end=False
                )
            )

        return {
            "team_id": team.id,
            "team_name": team.name,
            "period": f"{days}d",
            **current.as_dict(),
            "trend": asdict(trend_between(current, previous)),
        }

    async def get_historical(
        self,
        session: AsyncSession,
        team_id: int,
        days: int = DEFAULT_WINDOW_DAYS,
        repos: Sequence[str] | None = None,
        *,
        today: date | None = None,
    ) -> list[DailyValues]:
        """Per-day records for ``[today - days, today]``, ascending.

        Unfiltered: the stored daily rows. Filtered: raw events bucketed by
        deploy date; days without any deployment are absent, not zero.
        """
        _require_window_days(days)
        await self._require_team(session, team_id)
        today = today or utc_today()
        repos = normalize_repos(repos)
        start = today - timedelta(days=days)

        if repos:
            window_start, _ = utc_day_window(start)
            _, window_end = utc_day_window(today)
            deployments, samples = await self._load_facts(
                session, team_id, window_start, window_end, repos
            )
            return bucket_by_day(team_id, deployments, samples)

        rows = await self._metric_dao.list_range(session, team_id, start, today)
        return [
            DailyValues(
                team_id=row.team_id,
                date=row.date,
                deployment_frequency=row.deployment_frequency,
                deployment_count=row.deployment_count,
                lead_time_avg_hours=row.lead_time_avg_hours,
                lead_time_median_hours=row.lead_time_median_hours,
                change_failure_rate=row.change_failure_rate,
                mttr_hours=row.mttr_hours,
            )
            for row in rows
        ]

    # ── internal ──────────────────────────────────────────────────────────

    async def _require_team(self, session: AsyncSession, team_id: int) -> Team:
        team = await self._team_dao.get_by_id(session, team_id)
        if team is None:
            raise TeamNotFoundError(team_id)
        return team

    async def _load_facts(
        self,
        session: AsyncSession,
        team_id: int,
        start: datetime,
        end: datetime,
        repos: Sequence[str] | None = None,
    ) -> tuple[list[DeploymentFact], list[LeadTimeSample]]:
        dep_rows = await self._deployment_dao.list_in_window(session, team_id, start, end, repos)
        pair_rows = await self._deployment_dao.list_lead_time_pairs(
            session, team_id, start, end, repos
        )
        deployments = [
            DeploymentFact(
                repo_name=r.repo_name,
                status=r.status,
                deployed_at=r.deployed_at,
                duration_seconds=r.duration_seconds,
            )
            for r in dep_rows
        ]
        samples = [
            LeadTimeSample(deployed_at=r.deployed_at, first_commit_at=r.first_commit_at)
            for r in pair_rows
        ]
        return deployments, samples

    async def _window_from_events(
        self,
        session: AsyncSession,
        team_id: int,
        start_day: date,
        end_day: date,
        days: int,
        repos: Sequence[str],
    ) -> MetricValues:
        """Recompute a ``[start_day, end_day)`` window from raw events."""
        start, _ = utc_day_window(start_day)
        end, _ = utc_day_window(end_day)
        deployments, samples = await self._load_facts(session, team_id, start, end, repos)
        return aggregate_window(deployments, samples, days)


def _require_window_days(days: int) -> None:
    if days < 1:
        raise ValidationError("days must be a positive integer")
    if days > MAX_WINDOW_DAYS:
        raise ValidationError(f"days must not exceed {MAX_WINDOW_DAYS}")
