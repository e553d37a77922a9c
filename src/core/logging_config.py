"""Structured logging configuration.

This module initializes a structlog logger with a stable JSON format.
The minimum level comes from ``BULKFETCH_LOG_LEVEL`` and defaults to INFO.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import structlog

_LOG_LEVEL_ENV = "BULKFETCH_LOG_LEVEL"


def get_logger(name: str) -> Any:
    """Return a module logger instance.

    Args:
        name: Logger name, usually __name__.

    Returns:
        A structlog logger that renders one JSON object per event.
    """
    if not structlog.is_configured():
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.add_log_level,
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(_resolve_level()),
            cache_logger_on_first_use=True,
        )
    return structlog.get_logger(name)


def _resolve_level() -> int:
    level_name = os.getenv(_LOG_LEVEL_ENV, "INFO").strip().upper()
    level = logging.getLevelName(level_name)
    return level if isinstance(level, int) else logging.INFO
