"""Structured logging configuration using structlog.

Log lines are JSON on stderr; stdout is reserved for rendered events.
Every informer binds its resource kind into the context of the tasks it
starts, so lines from the reflector, queue and dispatcher of one informer
all carry the same ``kind`` field.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


def setup_logging(level: str = "info") -> None:
    """Configure structlog for JSON output to stderr."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def bind_kind(kind: str) -> None:
    """Tag every log line emitted from the current context with *kind*.

    Tasks created afterwards inherit the binding.
    """
    structlog.contextvars.bind_contextvars(kind=kind)


def get_logger(component: str, **bindings: Any) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name and any extra fields."""
    return structlog.get_logger(component=component, **bindings)  # type: ignore[return-value]
