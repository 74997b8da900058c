"""Metrics router — summary, history, recompute, and chart series."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dorametrics.api.deps import TEAM_ID_MAX, get_metrics_service, get_session
from dorametrics.api.schemas.metrics import (
    CalculateRequest,
    CalculateResponse,
    ChangeFailureRatePoint,
    DailyMetricItem,
    DeploymentFrequencyPoint,
    LeadTimePoint,
    MetricsSummary,
)
from dorametrics.engines.dora_calculator import DailyValues
from dorametrics.services.metrics_service import (
    DEFAULT_WINDOW_DAYS,
    MAX_WINDOW_DAYS,
    MetricsService,
)

router = APIRouter()


def window_days(raw: str | int | None) -> int:
    """Parse ``days``; missing, non-numeric or below 1 means 30.

    Values above the longest supported window are clamped to it.
    """
    try:
        days = int(raw) if raw is not None else DEFAULT_WINDOW_DAYS
    except (TypeError, ValueError):
        return DEFAULT_WINDOW_DAYS
    if days < 1:
        return DEFAULT_WINDOW_DAYS
    return min(days, MAX_WINDOW_DAYS)


def repo_filter(
    repos: str | None = Query(None, description="Comma-separated repository names"),
    repo: str | None = Query(None, description="Alias of repos"),
) -> list[str]:
    raw = repos or repo or ""
    return [r.strip() for r in raw.split(",") if r.strip()]


async def _history(
    team_id: int,
    days: str | None,
    repos: list[str],
    session: AsyncSession,
    svc: MetricsService,
) -> list[DailyValues]:
    return await svc.get_historical(session, team_id, window_days(days), repos or None)


@router.get("/summary/{team_id}", response_model=MetricsSummary)
async def get_summary(
    team_id: int = Path(..., ge=1, le=TEAM_ID_MAX),
    days: str | None = Query(None),
    repos: list[str] = Depends(repo_filter),
    session: AsyncSession = Depends(get_session),
    svc: MetricsService = Depends(get_metrics_service),
) -> MetricsSummary:
    result = await svc.get_summary(session, team_id, window_days(days), repos or None)
    return MetricsSummary(**result)


@router.get("/historical/{team_id}", response_model=list[DailyMetricItem])
async def get_historical(
    team_id: int = Path(..., ge=1, le=TEAM_ID_MAX),
    days: str | None = Query(None),
    repos: list[str] = Depends(repo_filter),
    session: AsyncSession = Depends(get_session),
    svc: MetricsService = Depends(get_metrics_service),
) -> list[DailyMetricItem]:
    series = await _history(team_id, days, repos, session, svc)
    return [DailyMetricItem.model_validate(d) for d in series]


@router.post("/calculate/{team_id}", response_model=CalculateResponse)
async def calculate(
    team_id: int = Path(..., ge=1, le=TEAM_ID_MAX),
    body: CalculateRequest | None = None,
    session: AsyncSession = Depends(get_session),
    svc: MetricsService = Depends(get_metrics_service),
) -> CalculateResponse:
    days = window_days(body.days if body is not None else None)
    result = await svc.recalculate_metrics(session, team_id, days)
    return CalculateResponse(
        message="Metrics calculation started",
        computed=len(result.computed),
        failed_dates=result.failed_dates,
    )


# ── chart series ──────────────────────────────────────────────────────────


@router.get("/chart/deployment-frequency/{team_id}", response_model=list[DeploymentFrequencyPoint])
async def deployment_frequency_chart(
    team_id: int = Path(..., ge=1, le=TEAM_ID_MAX),
    days: str | None = Query(None),
    repos: list[str] = Depends(repo_filter),
    session: AsyncSession = Depends(get_session),
    svc: MetricsService = Depends(get_metrics_service),
) -> list[DeploymentFrequencyPoint]:
    series = await _history(team_id, days, repos, session, svc)
    return [
        DeploymentFrequencyPoint(date=d.date, value=d.deployment_frequency, count=d.deployment_count)
        for d in series
    ]


@router.get("/chart/lead-time/{team_id}", response_model=list[LeadTimePoint])
async def lead_time_chart(
    team_id: int = Path(..., ge=1, le=TEAM_ID_MAX),
    days: str | None = Query(None),
    repos: list[str] = Depends(repo_filter),
    session: AsyncSession = Depends(get_session),
    svc: MetricsService = Depends(get_metrics_service),
) -> list[LeadTimePoint]:
    series = await _history(team_id, days, repos, session, svc)
    return [
        LeadTimePoint(date=d.date, avg=d.lead_time_avg_hours, median=d.lead_time_median_hours)
        for d in series
    ]


@router.get("/chart/change-failure-rate/{team_id}", response_model=list[ChangeFailureRatePoint])
async def change_failure_rate_chart(
    team_id: int = Path(..., ge=1, le=TEAM_ID_MAX),
    days: str | None = Query(None),
    repos: list[str] = Depends(repo_filter),
    session: AsyncSession = Depends(get_session),
    svc: MetricsService = Depends(get_metrics_service),
) -> list[ChangeFailureRatePoint]:
    series = await _history(team_id, days, repos, session, svc)
    return [ChangeFailureRatePoint(date=d.date, rate=d.change_failure_rate) for d in series]
