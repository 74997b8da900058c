"""DoraMetricDAO — dora_metrics table operations."""

from datetime import date

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from dorametrics.dao.base import BaseDAO
from dorametrics.models.dora_metric import DoraMetric

_METRIC_FIELDS = (
    "deployment_frequency",
    "deployment_count",
    "lead_time_avg_hours",
    "lead_time_median_hours",
    "change_failure_rate",
    "mttr_hours",
)


class DoraMetricDAO(BaseDAO[DoraMetric]):
    model = DoraMetric

    # ── read ──────────────────────────────────────────────────────────────

    async def list_range(
        self,
        session: AsyncSession,
        team_id: int,
        start: date,
        end: date,
        *,
        include_end: bool = True,
    ) -> list[DoraMetric]:
        """Daily rows with ``start <= date <= end`` (``< end`` if not *include_end*)."""
        upper = DoraMetric.date <= end if include_end else DoraMetric.date < end
        stmt = (
            select(DoraMetric)
            .where(DoraMetric.team_id == team_id, DoraMetric.date >= start, upper)
            .order_by(DoraMetric.date)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    # ── write ─────────────────────────────────────────────────────────────

    async def upsert(
        self,
        session: AsyncSession,
        *,
        team_id: int,
        day: date,
        deployment_frequency: float,
        deployment_count: int,
        lead_time_avg_hours: float,
        lead_time_median_hours: float,
        change_failure_rate: float,
        mttr_hours: float,
    ) -> DoraMetric:
        """Write the row for (team, day), overwriting every metric on conflict."""
        ins = insert(DoraMetric).values(
            team_id=team_id,
            date=day,
            deployment_frequency=deployment_frequency,
            deployment_count=deployment_count,
            lead_time_avg_hours=lead_time_avg_hours,
            lead_time_median_hours=lead_time_median_hours,
            change_failure_rate=change_failure_rate,
            mttr_hours=mttr_hours,
        )
        set_ = {name: getattr(ins.excluded, name) for name in _METRIC_FIELDS}
        set_["updated_at"] = func.now()
        stmt = (
            ins.on_conflict_do_update(constraint="uq_dora_metrics_team_date", set_=set_)
            .returning(DoraMetric)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one()
