"""Core logic of the idempotency guard.

This package contains the framework-agnostic business logic:
- State machine: the claim protocol (NoRecord -> Claimed -> Completed)
- Snapshot: encoding responses into record columns and back
- Guard: key validation, orchestration and metrics

Adapters for web frameworks live in ``idempotency_guard.adapters``.
"""

from idempotency_guard.core.snapshot import decode_response, encode_response

__all__ = ["decode_response", "encode_response"]
