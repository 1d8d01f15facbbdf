"""Storage adapters for the idempotency guard.

This package provides storage backend implementations for persisting
idempotency records. All adapters implement the StorageAdapter protocol
defined in base.py.

Available Adapters:
    - MemoryStorageAdapter: In-memory storage with asyncio concurrency
    - SQLStorageAdapter: PostgreSQL/SQLite storage through SQLAlchemy
"""

from idempotency_guard.config import IdempotencyConfig
from idempotency_guard.storage.base import StorageAdapter
from idempotency_guard.storage.memory import MemoryStorageAdapter
from idempotency_guard.storage.sql import SQLStorageAdapter, create_schema


def create_storage(config: IdempotencyConfig) -> StorageAdapter:
    """Build the storage adapter selected by ``config.storage_adapter``.

    Conflicting claims from the same process wait at most
    ``config.wait_timeout_seconds`` on the pair before the guard takes over
    with its bounded polling.
    """
    if config.storage_adapter == "sql":
        return SQLStorageAdapter.from_url(
            config.database_url,
            lock_timeout_seconds=config.wait_timeout_seconds,
        )
    return MemoryStorageAdapter(lock_timeout_seconds=config.wait_timeout_seconds)


__all__ = [
    "StorageAdapter",
    "MemoryStorageAdapter",
    "SQLStorageAdapter",
    "create_schema",
    "create_storage",
]
