"""
deploygate.monitoring - Log-derived counters for pipeline health.
"""

from deploygate.monitoring.log_metrics import (
    ERROR_COUNTER,
    SUCCESS_COUNTER,
    LogMarker,
    LogMetricDeriver,
    MetricCounters,
    MetricFilter,
    default_metric_filters,
)

__all__ = [
    "ERROR_COUNTER",
    "SUCCESS_COUNTER",
    "LogMarker",
    "LogMetricDeriver",
    "MetricCounters",
    "MetricFilter",
    "default_metric_filters",
]
