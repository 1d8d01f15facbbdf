"""In-memory storage adapter with asyncio concurrency control.

This module provides an in-memory implementation of the StorageAdapter
interface using a per-pair asyncio.Lock for concurrency control.

The MemoryStorageAdapter is suitable for:
    - Single-process applications
    - Development and testing

For multiple server processes use SQLStorageAdapter, which coordinates
through the database.

Concurrency:
    - Each (owner_id, key) pair has its own asyncio.Lock
    - The claimant holds the lock from claim() until complete() or release()
    - A conflicting claim() waits on the lock, then re-reads the record
    - An optional lock timeout bounds that wait; on expiry the record is
      reported as in-flight and the guard falls back to polling lookup()

Examples:
    Basic usage::

        from idempotency_guard.storage.memory import MemoryStorageAdapter

        adapter = MemoryStorageAdapter()

        outcome = await adapter.claim("user-1", "abc-123")
        if outcome.is_claimed:
            await adapter.complete(
                "user-1",
                "abc-123",
                response_status_code=200,
                response_headers=[(b"content-type", b"text/plain")],
                response_body=b"ok",
            )

    Concurrent duplicate handling::

        # The second claim waits until the first completes
        first = await adapter.claim("user-1", "abc-123")
        second_task = asyncio.create_task(adapter.claim("user-1", "abc-123"))
        await adapter.complete("user-1", "abc-123", 200, [], b"ok")
        second = await second_task
        assert second.saved_response.body == b"ok"
"""

from datetime import UTC, datetime

from idempotency_guard.core.snapshot import decode_response
from idempotency_guard.exceptions import NoSuchClaimError
from idempotency_guard.models import ClaimOutcome, IdempotencyRecord
from idempotency_guard.storage.base import StorageAdapter
from idempotency_guard.storage.locks import Pair, PairLocks


class MemoryStorageAdapter(StorageAdapter):
    """In-memory storage adapter with asyncio concurrency control.

    Attributes:
        _store: Dictionary mapping pairs to IdempotencyRecord objects.
        _locks: Per-pair lock registry.
        _held: Pairs whose claim is currently held by a caller.
        _lock_timeout_seconds: Bound on waiting for a held pair, or None.
    """

    def __init__(self, lock_timeout_seconds: float | None = None) -> None:
        """Initialize a new in-memory storage adapter.

        Args:
            lock_timeout_seconds: How long claim() waits on a pair held by
                another caller before reporting it as in-flight. None waits
                until the holder completes or releases.
        """
        self._store: dict[Pair, IdempotencyRecord] = {}
        self._locks = PairLocks()
        self._held: set[Pair] = set()
        self._lock_timeout_seconds = lock_timeout_seconds

    async def claim(self, owner_id: str, key: str) -> ClaimOutcome:
        """Atomically create an in-flight record for the pair.

        Race Condition Handling:
            The pair's lock serialises claims. The first caller to acquire it
            finds no record, inserts one and keeps the lock. Later callers
            acquire the lock only once the holder has completed (and see the
            saved response) or released (and claim the key themselves).
        """
        pair = (owner_id, key)
        lock = await self._locks.acquire(pair, self._lock_timeout_seconds)
        if lock is None:
            return ClaimOutcome.conflict(None)

        existing = self._store.get(pair)
        if existing is not None:
            lock.release()
            if existing.is_completed:
                return ClaimOutcome.conflict(decode_response(existing))
            return ClaimOutcome.conflict(None)

        self._store[pair] = IdempotencyRecord(
            owner_id=owner_id,
            idempotency_key=key,
            created_at=datetime.now(UTC),
        )
        # Lock is NOT released here - it stays held until complete/release
        self._held.add(pair)
        return ClaimOutcome.claimed()

    async def complete(
        self,
        owner_id: str,
        key: str,
        response_status_code: int,
        response_headers: list[tuple[bytes, bytes]],
        response_body: bytes,
    ) -> None:
        """Save the response of a held claim and release the pair's lock.

        The record is replaced in one assignment, so readers see either the
        in-flight record or the completed one.

        Raises:
            NoSuchClaimError: If no in-flight claim is held for the pair.
        """
        pair = (owner_id, key)
        record = self._store.get(pair)
        if pair not in self._held or record is None or record.is_completed:
            raise NoSuchClaimError(
                f"No in-flight claim for key {key}",
                owner_id=owner_id,
                key=key,
            )

        self._store[pair] = IdempotencyRecord(
            owner_id=owner_id,
            idempotency_key=key,
            response_status_code=response_status_code,
            response_headers=list(response_headers),
            response_body=response_body,
            created_at=record.created_at,
        )
        self._held.discard(pair)
        self._locks.retire(pair)

    async def lookup(self, owner_id: str, key: str) -> IdempotencyRecord | None:
        return self._store.get((owner_id, key))

    async def release(self, owner_id: str, key: str) -> None:
        """Drop a held in-flight record and wake the next waiting claimant."""
        pair = (owner_id, key)
        if pair not in self._held:
            return

        self._held.discard(pair)
        record = self._store.get(pair)
        if record is not None and record.is_in_flight:
            del self._store[pair]
        self._locks.release(pair)

    def __len__(self) -> int:
        return len(self._store)
