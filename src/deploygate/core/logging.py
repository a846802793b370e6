"""
deploygate.core.logging - structlog Setup
===========================================

Every module in DeployGate logs through ``structlog.get_logger()`` and binds
a ``component`` key. This module configures the processor chain once, at
process start, from the ``log_level`` / ``log_format`` settings.

Two renderers are supported:
    - console: human-readable key=value lines for local runs
    - json:    one JSON object per line for log shipping

Usage:
    >>> from deploygate.core.logging import configure_logging
    >>> configure_logging("DEBUG", "console")
"""

from __future__ import annotations

import logging

import structlog


def configure_logging(level: str = "INFO", fmt: str = "console") -> None:
    """Configure structlog for the whole process.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: "console" or "json".

    Raises:
        ValueError: If the level name or format is unknown.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")
    if fmt not in ("console", "json"):
        raise ValueError(f"Unknown log format: {fmt}")

    renderer: structlog.types.Processor
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
