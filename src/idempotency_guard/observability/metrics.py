"""Prometheus metrics for the idempotency guard.

Metrics include:

- Executions by result (new, replay, invalid, error, timeout)
- Side-effect execution time (new executions only)
- Claims currently in-flight in this process
- Per-item outcomes of batched side effects

Examples:
    Recording a replayed execution::

        from idempotency_guard.observability.metrics import record_request

        record_request(result="replay", status_code=303)

    Recording a skipped recipient::

        from idempotency_guard.observability.metrics import record_batch_item

        record_batch_item(status="failed")
"""

from prometheus_client import Counter, Gauge, Histogram

# Labels: result (new, replay, invalid, error, timeout), status_code
requests_total = Counter(
    "idempotency_requests_total",
    "Total number of executions handled by the idempotency guard",
    ["result", "status_code"],
)

# Only tracks new executions, not replays
execution_time_seconds = Histogram(
    "idempotency_execution_time_seconds",
    "Side-effect execution time in seconds (new executions only)",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60],
)

inflight_claims = Gauge(
    "idempotency_inflight_claims",
    "Number of claims held by this process whose side effect is running",
)

batch_items_total = Counter(
    "idempotency_batch_items_total",
    "Per-item outcomes of batched side effects",
    ["status"],
)


def record_request(result: str, status_code: int | None = None) -> None:
    """Record a handled execution.

    Args:
        result: The result type (new, replay, invalid, error, timeout)
        status_code: Status code of the returned response, if any
    """
    label = str(status_code) if status_code is not None else "none"
    requests_total.labels(result=result, status_code=label).inc()


def record_execution_time(exec_time_ms: int) -> None:
    """Record side-effect execution time. New executions only."""
    execution_time_seconds.observe(exec_time_ms / 1000.0)


def increment_inflight_claims() -> None:
    inflight_claims.inc()


def decrement_inflight_claims() -> None:
    inflight_claims.dec()


def record_batch_item(status: str) -> None:
    """Record one item outcome of a batched side effect ("succeeded" or "failed")."""
    batch_items_total.labels(status=status).inc()
