"""Structured logging configuration for the idempotency guard.

This module provides structured logging using structlog. Every guard event
is a dotted event name with the pair it concerns bound as ``owner_id`` and
``key``, so that the lifecycle of one submission can be followed across
processes:

    claim.acquired -> claim.completed
    claim.acquired -> side_effect.failed -> claim.released
    claim.waiting  -> claim.replayed | claim.wait_timeout

Examples:
    Configure logging once at startup::

        from idempotency_guard.observability.logging import configure_logging

        configure_logging(level="INFO", json_output=True)

    Use the logger::

        from idempotency_guard.observability.logging import get_logger

        logger = get_logger(__name__)
        logger.info("claim.replayed", owner_id="user-1", key="abc-123", status_code=303)

    Output (JSON)::

        {
            "event": "claim.replayed",
            "owner_id": "user-1",
            "key": "abc-123",
            "status_code": 303,
            "timestamp": "2024-01-01T00:00:00.000000Z",
            "level": "info"
        }
"""

import logging
import sys
from typing import Any

import structlog


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, emit JSON logs; if False, use console format
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )

    processors: list[object] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,  # type: ignore[arg-type]
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ from the calling module)

    Returns:
        A structlog logger instance
    """
    return structlog.get_logger(name)
