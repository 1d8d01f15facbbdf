"""
Exactly-once execution guard for side-effecting operations.

This package lets a client retry a submission carrying an idempotency key
without the side effect running twice: the first execution's response is
saved per (owner_id, key) pair and replayed byte for byte to every retry.
"""

from idempotency_guard.config import IdempotencyConfig
from idempotency_guard.core.guard import IdempotencyGuard
from idempotency_guard.keys import validate_key
from idempotency_guard.models import (
    BatchOutcome,
    ClaimOutcome,
    ClaimStatus,
    IdempotencyKey,
    IdempotencyRecord,
    ItemOutcome,
    ResponseSnapshot,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "BatchOutcome",
    "ClaimOutcome",
    "ClaimStatus",
    "IdempotencyConfig",
    "IdempotencyGuard",
    "IdempotencyKey",
    "IdempotencyRecord",
    "ItemOutcome",
    "ResponseSnapshot",
    "validate_key",
]
