"""
deploygate.infrastructure.log_stream - Captured Build Log Collection
======================================================================

The build platform captures the Build Runner's standard output verbatim into
a named log group. A LogCollection is that log group: lines are appended per
stream (one stream per build), and subscription filters receive every line
as it arrives.

Architecture Context:

    BuildRunner ── put_log_events ──→ LogCollection ──→ subscription filters
                                      (log group)        (LogMetricDeriver)

Subscribers are async callables ``(stream_name, line) -> None``. A failing
subscriber is logged and never propagates to the writer, so a broken metric
filter cannot fail a build.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import structlog
from pydantic import BaseModel, Field


logger = structlog.get_logger()

LogSubscriber = Callable[[str, str], Awaitable[None]]


class LogEvent(BaseModel):
    """One captured log line."""

    stream: str
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class LogCollection:
    """A named log group holding one stream per build.

    Example:
        >>> logs = LogCollection("/aws/codebuild/deploy-readme-s3")
        >>> await logs.put_log_events("build-1", ["Deploy README.md to S3"])
        >>> logs.lines("build-1")
        ['Deploy README.md to S3']
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._streams: dict[str, list[LogEvent]] = {}
        self._subscribers: list[LogSubscriber] = []
        self._lock = asyncio.Lock()
        self._logger = logger.bind(component="log_collection", log_group=name)

    @property
    def name(self) -> str:
        return self._name

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def stream_names(self) -> list[str]:
        return list(self._streams)

    def subscribe(self, callback: LogSubscriber) -> None:
        """Attach a subscription filter that sees every future line."""
        self._subscribers.append(callback)
        self._logger.debug("log_subscription_added", subscribers=len(self._subscribers))

    async def create_log_stream(self, stream: str) -> None:
        async with self._lock:
            self._streams.setdefault(stream, [])

    async def put_log_events(self, stream: str, lines: list[str]) -> None:
        """Append lines to a stream and fan them out to subscribers in order."""
        async with self._lock:
            events = self._streams.setdefault(stream, [])
            for line in lines:
                events.append(LogEvent(stream=stream, message=line))
            subscribers = list(self._subscribers)

        for line in lines:
            for callback in subscribers:
                try:
                    await callback(stream, line)
                except Exception as exc:
                    self._logger.error(
                        "log_subscriber_error",
                        stream=stream,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )

    def lines(self, stream: Optional[str] = None) -> list[str]:
        """Captured lines of one stream, or of all streams in write order."""
        if stream is not None:
            return [e.message for e in self._streams.get(stream, [])]
        events = [e for evs in self._streams.values() for e in evs]
        return [e.message for e in sorted(events, key=lambda e: e.timestamp)]
