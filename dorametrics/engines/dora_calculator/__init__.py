"""DORA calculator engine — metric formulas without DB access."""

from dorametrics.engines.dora_calculator.calculator import (
    aggregate,
    aggregate_window,
    bucket_by_day,
    calc_trend,
    change_failure_rate,
    date_range,
    mean,
    percentile_cont,
    reduce_daily_rows,
    to_utc_date,
    trend_between,
    utc_day_window,
)
from dorametrics.engines.dora_calculator.models import (
    DailyValues,
    DeploymentFact,
    LeadTimeSample,
    MetricValues,
    Trend,
)

__all__ = [
    "DailyValues",
    "DeploymentFact",
    "LeadTimeSample",
    "MetricValues",
    "Trend",
    "aggregate",
    "aggregate_window",
    "bucket_by_day",
    "calc_trend",
    "change_failure_rate",
    "date_range",
    "mean",
    "percentile_cont",
    "reduce_daily_rows",
    "to_utc_date",
    "trend_between",
    "utc_day_window",
]
