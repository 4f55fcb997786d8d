"""Structured logging configuration.

Channel updates run from a terminal or from CI. In a terminal the
console renderer is easier to read; in CI the JSON renderer keeps each
event (page fetched, stage entered, tool step run) greppable. Output
always goes to stderr since stdout carries the --dry-run changelog.

The format is picked in this order:
    1. the log_format argument
    2. RELEASE_CHANNEL_LOG_FORMAT ("console" or "json")
    3. "json" when CI is set or stderr is not a terminal, else "console"

Usage:
    from release_channel.logging_config import setup_logging, get_logger

    setup_logging(log_level="DEBUG")
    logger = get_logger(__name__)
    logger.info("stage_entered", channel="stable", stage="STAGING")
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, TextIO

import structlog

LOG_FORMATS = ("console", "json")


def resolve_log_format(log_format: str | None = None, stream: TextIO | None = None) -> str:
    """Pick the renderer for this run.

    Raises:
        ValueError: If the requested format is not one of LOG_FORMATS
    """
    stream = stream if stream is not None else sys.stderr
    chosen = log_format or os.environ.get("RELEASE_CHANNEL_LOG_FORMAT")
    if chosen:
        chosen = chosen.lower()
        if chosen not in LOG_FORMATS:
            raise ValueError(f"Unknown log format {chosen!r}, expected one of {', '.join(LOG_FORMATS)}")
        return chosen

    if os.environ.get("CI") or not stream.isatty():
        return "json"
    return "console"


def resolve_log_level(log_level: str | None = None) -> int:
    """Map a level name (or RELEASE_CHANNEL_LOG_LEVEL, default INFO) to its number."""
    name = (log_level or os.environ.get("RELEASE_CHANNEL_LOG_LEVEL") or "INFO").upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level {name!r}")
    return level


def setup_logging(
    log_format: str | None = None,
    log_level: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """Configure structlog and the standard library logging bridge.

    Args:
        log_format: "console" or "json"; see resolve_log_format()
        log_level: Level name (DEBUG, INFO, WARNING, ERROR).
                   Reads RELEASE_CHANNEL_LOG_LEVEL if not provided.
        stream: Where log lines are written (default: stderr)
    """
    stream = stream if stream is not None else sys.stderr
    level = resolve_log_level(log_level)

    if resolve_log_format(log_format, stream) == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=False,
    )

    # httpx logs every request at INFO; keep it quiet unless debugging.
    logging.basicConfig(format="%(message)s", stream=stream, level=level)
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> Any:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
