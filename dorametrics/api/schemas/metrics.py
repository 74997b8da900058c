"""Metrics request/response schemas.

Field names mirror what the dashboard reads; do not rename.
"""

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, ConfigDict


class TrendBlock(BaseModel):
    deployment_frequency: float
    lead_time: float
    change_failure_rate: float


class MetricsSummary(BaseModel):
    team_id: int
    team_name: str
    period: str
    deployment_frequency: float
    deployment_count: int
    lead_time_avg_hours: float
    lead_time_median_hours: float
    change_failure_rate: float
    mttr_hours: float
    trend: TrendBlock


class DailyMetricItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    team_id: int
    date: dt.date
    deployment_frequency: float
    deployment_count: int
    lead_time_avg_hours: float
    lead_time_median_hours: float
    change_failure_rate: float
    mttr_hours: float


class CalculateRequest(BaseModel):
    days: int | None = None


class CalculateResponse(BaseModel):
    message: str
    computed: int
    failed_dates: list[dt.date]


# ── chart series ──────────────────────────────────────────────────────────


class DeploymentFrequencyPoint(BaseModel):
    date: dt.date
    value: float
    count: int


class LeadTimePoint(BaseModel):
    date: dt.date
    avg: float
    median: float


class ChangeFailureRatePoint(BaseModel):
    date: dt.date
    rate: float
