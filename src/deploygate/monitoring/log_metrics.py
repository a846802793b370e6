"""
deploygate.monitoring.log_metrics - Log-Derived Counters
==========================================================

Turns unstructured build log lines into named counters. The deriver is a
subscription filter on the runner's log collection: it reads every line,
never writes a log itself, and keeps no state beyond the counter totals.

Default Filters:

    BuildErrorFilter    → BuildErrors       markers: ERROR | Error | Failed | FAILED
    BuildSuccessFilter  → BuildSuccesses    markers: SUCCESS

Matching:
    - A LogMarker is a set of literal, case-sensitive terms; it matches a
      line when every term occurs in the line.
    - A MetricFilter matches when any of its markers matches, and then
      yields exactly one CounterEvent(counter, 1) for that line.
    - Filters are evaluated independently. A line that matches both sets
      (e.g. "Build Failed - see SUCCESS banner below") counts under both.

There is no windowing, aggregation, or alarming here. Counters are totals.
"""

from __future__ import annotations

from typing import Iterable, Optional

import structlog
from pydantic import BaseModel, Field, field_validator

from deploygate.core.models import CounterEvent
from deploygate.infrastructure.log_stream import LogCollection


logger = structlog.get_logger()

METRIC_NAMESPACE = "CI/ReadmeDeploy"
ERROR_COUNTER = "BuildErrors"
SUCCESS_COUNTER = "BuildSuccesses"


class LogMarker(BaseModel):
    """Literal terms that must all appear in a line for it to match."""

    model_config = {"frozen": True}

    terms: tuple[str, ...] = Field(min_length=1)

    @field_validator("terms")
    @classmethod
    def _non_empty_terms(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if any(not term for term in value):
            raise ValueError("marker terms must be non-empty")
        return value

    @classmethod
    def literal(cls, text: str) -> LogMarker:
        return cls(terms=(text,))

    def matches(self, line: str) -> bool:
        return all(term in line for term in self.terms)


class MetricFilter(BaseModel):
    """A named marker set bound to one counter.

    Attributes:
        name: Filter name (for logs and outputs).
        counter_name: The counter incremented on a match.
        markers: The marker set; any one matching is enough.
    """

    model_config = {"frozen": True}

    name: str
    counter_name: str
    markers: tuple[LogMarker, ...] = Field(min_length=1)

    def matches(self, line: str) -> bool:
        return any(marker.matches(line) for marker in self.markers)


def default_metric_filters() -> list[MetricFilter]:
    """The error and success filters provisioned for the build log group."""
    return [
        MetricFilter(
            name="BuildErrorFilter",
            counter_name=ERROR_COUNTER,
            markers=tuple(
                LogMarker.literal(term) for term in ("ERROR", "Error", "Failed", "FAILED")
            ),
        ),
        MetricFilter(
            name="BuildSuccessFilter",
            counter_name=SUCCESS_COUNTER,
            markers=(LogMarker.literal("SUCCESS"),),
        ),
    ]


class MetricCounters:
    """Running totals of named counters."""

    def __init__(self, namespace: str = METRIC_NAMESPACE) -> None:
        self.namespace = namespace
        self._totals: dict[str, int] = {}

    def record(self, event: CounterEvent) -> None:
        self._totals[event.counter_name] = self._totals.get(event.counter_name, 0) + event.increment

    def value(self, counter_name: str) -> int:
        return self._totals.get(counter_name, 0)

    def snapshot(self) -> dict[str, int]:
        return dict(self._totals)

    def reset(self) -> None:
        self._totals.clear()


class LogMetricDeriver:
    """Derives CounterEvents from log lines and accumulates them.

    Example:
        >>> deriver = LogMetricDeriver()
        >>> [e.counter_name for e in deriver.on_log_line("ERROR: disk full")]
        ['BuildErrors']
        >>> deriver.counters.value("BuildErrors")
        1
    """

    def __init__(
        self,
        filters: Optional[Iterable[MetricFilter]] = None,
        counters: Optional[MetricCounters] = None,
    ) -> None:
        self._filters = list(filters) if filters is not None else default_metric_filters()
        counter_names = [f.counter_name for f in self._filters]
        if len(set(counter_names)) != len(counter_names):
            raise ValueError(f"each filter needs its own counter: {counter_names}")
        self.counters = counters or MetricCounters()
        self._logger = logger.bind(component="log_metric_deriver")

    @property
    def filters(self) -> list[MetricFilter]:
        return list(self._filters)

    def derive(self, line: str) -> list[CounterEvent]:
        """Pure matching: the events ``line`` produces, without recording them."""
        return [CounterEvent(counter_name=f.counter_name) for f in self._filters if f.matches(line)]

    def on_log_line(self, line: str) -> list[CounterEvent]:
        events = self.derive(line)
        for event in events:
            self.counters.record(event)
        if len(events) > 1:
            self._logger.debug(
                "log_line_matched_multiple_filters",
                counters=[e.counter_name for e in events],
            )
        return events

    def attach(self, collection: LogCollection) -> None:
        """Subscribe to every line written to ``collection``."""

        async def _subscriber(stream: str, line: str) -> None:
            self.on_log_line(line)

        collection.subscribe(_subscriber)
        self._logger.info(
            "metric_filters_attached",
            log_group=collection.name,
            filters=[f.name for f in self._filters],
        )
