"""Storage adapter protocol and interface for the idempotency guard.

This module defines the abstract interface that all storage backends must
implement to work with the idempotency guard. The interface is built around
two atomic writes scoped to a single (owner_id, idempotency_key) pair:

    claim    - insert an in-flight record, or detect the existing one
    complete - populate the response fields of the claimant's record

plus a read-only ``lookup`` used while waiting for an in-flight claim, and
``release`` used to abandon a claim whose side effect failed.

Examples:
    Using a storage adapter::

        from idempotency_guard.core.snapshot import encode_response

        outcome = await storage.claim(owner_id, key)

        if outcome.is_claimed:
            try:
                response = await side_effect()
            except Exception:
                await storage.release(owner_id, key)
                raise
            await storage.complete(owner_id, key, **encode_response(response))
            return response

        if outcome.saved_response is not None:
            return outcome.saved_response

        # Still in-flight: wait for the claimant (see core.state_machine)

Atomicity Requirements:
    All StorageAdapter implementations MUST guarantee:

    1. **Atomic claim**: claim() inserts-or-detects-conflict in one operation.
       A separate existence check followed by an insert is not acceptable.

    2. **Uniqueness**: at most one record exists per (owner_id, key) pair.

    3. **All-or-nothing completion**: complete() sets the status code, headers
       and body in one write. No other caller ever observes a partially
       populated record.

    4. **Blocking on conflict**: a claim() that conflicts with an in-flight
       record should wait until the claimant completes or releases, then
       re-read. A backend that cannot block reports the record as in-flight
       and the guard falls back to bounded polling through lookup().

    5. **Isolation**: operations on different pairs never block each other.

Error Handling:
    Methods raise StorageError for backend failures and NoSuchClaimError when
    complete() is called for a pair this adapter holds no claim for.
    Implementations should NOT raise backend-specific exceptions directly.
"""

from typing import Protocol, runtime_checkable

from idempotency_guard.models import ClaimOutcome, IdempotencyRecord


@runtime_checkable
class StorageAdapter(Protocol):
    """Protocol defining the interface for idempotency storage backends.

    All methods are async and must be safe to call concurrently from many
    asyncio tasks. Durable backends must also be safe across processes.
    """

    async def claim(self, owner_id: str, key: str) -> ClaimOutcome:
        """Atomically create an in-flight record for the pair.

        Args:
            owner_id: Identity of the calling owner.
            key: The validated idempotency key.

        Returns:
            ``ClaimOutcome.claimed()`` if the record was created by this call,
            otherwise ``ClaimOutcome.conflict(saved)`` where ``saved`` is the
            decoded response of the existing record, or None if that record
            is still in-flight.

        Examples:
            >>> outcome = await adapter.claim("user-1", "abc-123")
            >>> outcome.is_claimed
            True
        """
        ...

    async def complete(
        self,
        owner_id: str,
        key: str,
        response_status_code: int,
        response_headers: list[tuple[bytes, bytes]],
        response_body: bytes,
    ) -> None:
        """Populate the response fields of a claimed record.

        Must only be called by the claimant, exactly once, after the side
        effect has succeeded.

        Raises:
            NoSuchClaimError: If no in-flight claim is held for the pair.
            StorageError: If the backend write fails.
        """
        ...

    async def lookup(self, owner_id: str, key: str) -> IdempotencyRecord | None:
        """Fetch the committed record for the pair, if any.

        Returns:
            The record if found, None otherwise.
        """
        ...

    async def release(self, owner_id: str, key: str) -> None:
        """Abandon an in-flight claim so that a retry can claim the key again.

        Does nothing if the adapter holds no in-flight claim for the pair.
        A completed record is never released.
        """
        ...
