"""Framework adapters for the idempotency guard.

This package provides adapters that integrate the framework-agnostic guard
with specific web frameworks:

- asgi.py: Starlette endpoint usable from FastAPI and Starlette routes

The adapters handle the conversion between framework-specific response
objects and the guard's ResponseSnapshot.
"""

from idempotency_guard.adapters.asgi import IdempotentEndpoint, header_key_extractor

__all__ = ["IdempotentEndpoint", "header_key_extractor"]
