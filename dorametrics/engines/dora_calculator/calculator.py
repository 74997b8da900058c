"""DORA calculator engine — pure statistics over event-store facts, no DB access.

Two reductions are provided and they are intentionally not interchangeable:

* :func:`aggregate` / :func:`aggregate_window` derive the metrics from raw
  deployment facts and lead-time samples (daily rows, repo-filtered paths).
* :func:`reduce_daily_rows` averages already-stored daily rows
  (mean-of-daily-means; the unfiltered summary path).

All sums go through :func:`math.fsum` and samples are sorted before
percentiles, so results never depend on the order rows come back in.
"""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import date, datetime, time, timedelta, timezone
from typing import Protocol

from dorametrics.engines.dora_calculator.models import (
    DailyValues,
    DeploymentFact,
    LeadTimeSample,
    MetricValues,
    Trend,
)

SECONDS_PER_HOUR = 3600


class DailyRow(Protocol):
    deployment_frequency: float
    deployment_count: int
    lead_time_avg_hours: float
    lead_time_median_hours: float
    change_failure_rate: float
    mttr_hours: float


# ── primitives ────────────────────────────────────────────────────────────


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean; ``0.0`` for an empty sequence."""
    if not values:
        return 0.0
    return math.fsum(values) / len(values)


def percentile_cont(values: Iterable[float], fraction: float) -> float | None:
    """Continuous percentile with linear interpolation between ranks.

    Matches PostgreSQL ``PERCENTILE_CONT``: *fraction* is in ``[0, 1]`` and
    the input does not need to be sorted. Returns ``None`` for no values.

    Raises ``ValueError`` if *fraction* is outside ``[0, 1]``.
    """
    if not 0 <= fraction <= 1:
        raise ValueError("fraction must be in the range [0, 1]")

    ordered = sorted(values)
    if not ordered:
        return None

    position = (len(ordered) - 1) * fraction
    lower = math.floor(position)
    upper = math.ceil(position)
    if lower == upper:
        return ordered[lower]
    return ordered[lower] + (ordered[upper] - ordered[lower]) * (position - lower)


def change_failure_rate(failed: int, total: int) -> float:
    """Failed share of all deployments in percent, ``0.0`` when there are none."""
    if total <= 0:
        return 0.0
    return failed / total * 100


def calc_trend(current: float, previous: float | None) -> float:
    """Percentage change from *previous* to *current*.

    Defined as ``0.0`` when the baseline is missing or zero.
    """
    if not previous:
        return 0.0
    return (current - previous) / previous * 100


def trend_between(current: MetricValues, previous: MetricValues) -> Trend:
    return Trend(
        deployment_frequency=calc_trend(
            current.deployment_frequency, previous.deployment_frequency
        ),
        lead_time=calc_trend(current.lead_time_avg_hours, previous.lead_time_avg_hours),
        change_failure_rate=calc_trend(
            current.change_failure_rate, previous.change_failure_rate
        ),
    )


# ── calendar helpers ──────────────────────────────────────────────────────


def to_utc_date(value: date | datetime) -> date:
    """Truncate a datetime to its UTC calendar day; dates pass through.

    Naive datetimes are taken to be UTC already.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def utc_day_window(day: date) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` UTC interval covering *day*."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def date_range(start: date, end: date) -> list[date]:
    """Every calendar date from *start* to *end* inclusive, ascending."""
    if start > end:
        return []
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


# ── reductions ────────────────────────────────────────────────────────────


def aggregate(
    deployments: Iterable[DeploymentFact],
    samples: Iterable[LeadTimeSample],
) -> MetricValues:
    """Compute the metrics for one bucket of raw facts.

    ``deployment_frequency`` is the raw success count of the bucket;
    callers that want a per-day rate divide it themselves.
    """
    total = 0
    failed = 0
    succeeded = 0
    durations: list[float] = []
    for dep in deployments:
        total += 1
        if dep.status == "failed":
            failed += 1
        elif dep.status == "success":
            succeeded += 1
            if dep.duration_seconds is not None:
                durations.append(float(dep.duration_seconds))

    lead_hours = [s.hours for s in samples]
    median = percentile_cont(lead_hours, 0.5)

    return MetricValues(
        deployment_frequency=float(succeeded),
        deployment_count=succeeded,
        lead_time_avg_hours=mean(lead_hours),
        lead_time_median_hours=median if median is not None else 0.0,
        change_failure_rate=change_failure_rate(failed, total),
        mttr_hours=mean(durations) / SECONDS_PER_HOUR,
    )


def aggregate_window(
    deployments: Iterable[DeploymentFact],
    samples: Iterable[LeadTimeSample],
    days: int,
) -> MetricValues:
    """Like :func:`aggregate`, but over a whole window with a true per-day rate."""
    values = aggregate(deployments, samples)
    values.deployment_frequency = values.deployment_count / days if days > 0 else 0.0
    return values


def reduce_daily_rows(rows: Sequence[DailyRow]) -> MetricValues:
    """Average stored daily rows into one window (sum for the count)."""
    return MetricValues(
        deployment_frequency=mean([r.deployment_frequency for r in rows]),
        deployment_count=sum(r.deployment_count for r in rows),
        lead_time_avg_hours=mean([r.lead_time_avg_hours for r in rows]),
        lead_time_median_hours=mean([r.lead_time_median_hours for r in rows]),
        change_failure_rate=mean([r.change_failure_rate for r in rows]),
        mttr_hours=mean([r.mttr_hours for r in rows]),
    )


def bucket_by_day(
    team_id: int,
    deployments: Iterable[DeploymentFact],
    samples: Iterable[LeadTimeSample],
) -> list[DailyValues]:
    """Group raw facts by UTC deploy date and aggregate each day.

    Only dates with at least one deployment or sample appear; the result
    is sparse and ascending.
    """
    deps_by_day: dict[date, list[DeploymentFact]] = defaultdict(list)
    samples_by_day: dict[date, list[LeadTimeSample]] = defaultdict(list)
    for dep in deployments:
        deps_by_day[to_utc_date(dep.deployed_at)].append(dep)
    for sample in samples:
        samples_by_day[to_utc_date(sample.deployed_at)].append(sample)

    series: list[DailyValues] = []
    for day in sorted(deps_by_day.keys() | samples_by_day.keys()):
        values = aggregate(deps_by_day.get(day, []), samples_by_day.get(day, []))
        series.append(DailyValues(team_id=team_id, date=day, **values.as_dict()))
    return series
