"""Data models for the DORA calculator engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime


@dataclass(frozen=True)
class DeploymentFact:
    """One deployments row as seen by the calculator.

    This is a pure data structure — no DB dependencies.
    """

    repo_name: str
    status: str  # success / failed / running
    deployed_at: datetime
    duration_seconds: int | None = None


@dataclass(frozen=True)
class LeadTimeSample:
    """A successful deployment whose commit resolved to a PR with a first commit."""

    deployed_at: datetime
    first_commit_at: datetime

    @property
    def hours(self) -> float:
        return (self.deployed_at - self.first_commit_at).total_seconds() / 3600


@dataclass
class MetricValues:
    """The six DORA figures shared by daily rows and window summaries."""

    deployment_frequency: float = 0.0
    deployment_count: int = 0
    lead_time_avg_hours: float = 0.0
    lead_time_median_hours: float = 0.0
    change_failure_rate: float = 0.0
    mttr_hours: float = 0.0

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class DailyValues:
    """One per-day metric record in a historical series."""

    team_id: int
    date: date
    deployment_frequency: float = 0.0
    deployment_count: int = 0
    lead_time_avg_hours: float = 0.0
    lead_time_median_hours: float = 0.0
    change_failure_rate: float = 0.0
    mttr_hours: float = 0.0


@dataclass
class Trend:
    """Percentage change of the current window against the previous one."""

    deployment_frequency: float = 0.0
    lead_time: float = 0.0
    change_failure_rate: float = 0.0
