"""dora_metrics table — one aggregated row per (team, day)."""

import datetime as dt

from sqlalchemy import BigInteger, Date, Double, ForeignKey, Integer, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from dorametrics.core.database import Base, TimestampMixin


class DoraMetric(TimestampMixin, Base):
    __tablename__ = "dora_metrics"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)

    # same-day success count, not a rate
    deployment_frequency: Mapped[float] = mapped_column(
        Double, nullable=False, server_default=text("0")
    )
    deployment_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    lead_time_avg_hours: Mapped[float] = mapped_column(
        Double, nullable=False, server_default=text("0")
    )
    lead_time_median_hours: Mapped[float] = mapped_column(
        Double, nullable=False, server_default=text("0")
    )
    change_failure_rate: Mapped[float] = mapped_column(
        Double, nullable=False, server_default=text("0")
    )
    mttr_hours: Mapped[float] = mapped_column(Double, nullable=False, server_default=text("0"))

    __table_args__ = (UniqueConstraint("team_id", "date", name="uq_dora_metrics_team_date"),)
