"""Observability utilities for the idempotency guard.

This package provides monitoring and debugging capabilities:
- Prometheus metrics for claims, replays and batch outcomes
- Structured logging with the (owner_id, key) pair bound to each event
"""

from idempotency_guard.observability.logging import configure_logging, get_logger
from idempotency_guard.observability.metrics import (
    record_batch_item,
    record_execution_time,
    record_request,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "record_request",
    "record_execution_time",
    "record_batch_item",
]
