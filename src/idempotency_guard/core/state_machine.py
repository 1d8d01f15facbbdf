"""State machine handler for idempotent execution.

This module implements the claim protocol that lets exactly one caller per
(owner_id, key) pair run the side effect while every other caller replays the
winner's saved response. Per pair:

    NoRecord -> Claimed (in-flight) -> Completed
    Claimed  -> NoRecord               (side effect failed or was cancelled)

The state machine handles:
- Claiming the pair through the storage adapter's atomic claim
- Running the side effect and saving its response for the claimant
- Releasing the claim when the side effect fails, so a retry can re-attempt
- Replaying saved responses for every other caller
- Waiting, with an upper bound, for a claim that is still in-flight

Examples:
    Processing a submission::

        from idempotency_guard.core.state_machine import process_request
        from idempotency_guard.keys import validate_key
        from idempotency_guard.storage.memory import MemoryStorageAdapter
        from idempotency_guard.config import IdempotencyConfig

        storage = MemoryStorageAdapter()
        config = IdempotencyConfig()

        async def publish():
            return ResponseSnapshot(status_code=200, body=b"ok")

        result = await process_request(
            storage=storage,
            owner_id="user-1",
            key=validate_key("abc-123"),
            side_effect=publish,
            config=config,
        )
"""

import asyncio
import time
from collections.abc import Awaitable, Callable

from idempotency_guard.config import IdempotencyConfig
from idempotency_guard.core.snapshot import decode_response, encode_response
from idempotency_guard.exceptions import (
    ClaimWaitTimeoutError,
    IdempotencyError,
    SideEffectError,
    StorageError,
)
from idempotency_guard.models import BatchOutcome, IdempotencyKey, IdempotencyRecord, ResponseSnapshot
from idempotency_guard.observability.logging import get_logger
from idempotency_guard.observability.metrics import (
    decrement_inflight_claims,
    increment_inflight_claims,
    record_batch_item,
)
from idempotency_guard.storage.base import StorageAdapter

logger = get_logger(__name__)

SideEffect = Callable[[], Awaitable[ResponseSnapshot | BatchOutcome]]


class StateResult:
    """Result of state machine processing.

    Attributes:
        response: The response object (either new or replayed)
        was_replayed: True if response was replayed from a saved record
        execution_time_ms: Side-effect execution time (None for replays)
    """

    def __init__(
        self,
        response: ResponseSnapshot,
        was_replayed: bool,
        execution_time_ms: int | None = None,
    ) -> None:
        self.response = response
        self.was_replayed = was_replayed
        self.execution_time_ms = execution_time_ms


async def process_request(
    storage: StorageAdapter,
    owner_id: str,
    key: IdempotencyKey,
    side_effect: SideEffect,
    config: IdempotencyConfig,
) -> StateResult:
    """Run ``side_effect`` at most once for the pair and return its response.

    Flow:
        1. Claim the pair
        2. Claimed: execute the side effect and save its response
        3. Conflict with a saved response: replay it
        4. Conflict with an in-flight record: wait for it, then replay; if
           the claimant released the pair instead, go back to step 1

    Every wait shares one deadline of ``config.wait_timeout_seconds``.

    Args:
        storage: Storage adapter for idempotency records
        owner_id: Identity of the caller
        key: The validated idempotency key
        side_effect: Async callable performing the guarded work
        config: Configuration object

    Returns:
        StateResult with the response and metadata

    Raises:
        SideEffectError: If the side effect raised (the claim is released)
        ClaimWaitTimeoutError: If an in-flight claim did not finish in time
        StorageError: If the storage backend fails
    """
    started = time.monotonic()
    deadline = started + config.wait_timeout_seconds

    while True:
        outcome = await storage.claim(owner_id, key.value)

        if outcome.is_claimed:
            return await handle_claimed_request(
                storage=storage,
                owner_id=owner_id,
                key=key.value,
                side_effect=side_effect,
            )

        if outcome.saved_response is not None:
            logger.info(
                "claim.replayed",
                owner_id=owner_id,
                key=key.value,
                status_code=outcome.saved_response.status_code,
            )
            return StateResult(response=outcome.saved_response, was_replayed=True)

        record = await wait_for_completion(
            storage=storage,
            owner_id=owner_id,
            key=key.value,
            started=started,
            deadline=deadline,
            poll_interval_seconds=config.poll_interval_seconds,
        )
        if record is not None:
            response = decode_response(record)
            logger.info(
                "claim.replayed",
                owner_id=owner_id,
                key=key.value,
                status_code=response.status_code,
                waited=True,
            )
            return StateResult(response=response, was_replayed=True)

        # The claimant released the pair; compete for it again
        logger.info("claim.retrying", owner_id=owner_id, key=key.value)


async def handle_claimed_request(
    storage: StorageAdapter,
    owner_id: str,
    key: str,
    side_effect: SideEffect,
) -> StateResult:
    """Execute the side effect as the claimant and save its response.

    On failure or cancellation the claim is released before the error
    propagates, so nothing is saved and a retry with the same key runs the
    side effect again.

    Raises:
        SideEffectError: If the side effect raised.
        StorageError: If the response could not be saved.
    """
    logger.info("claim.acquired", owner_id=owner_id, key=key)
    increment_inflight_claims()
    start_time = time.monotonic()
    try:
        result = await side_effect()
    except asyncio.CancelledError:
        logger.warning("side_effect.cancelled", owner_id=owner_id, key=key)
        await release_claim(storage, owner_id, key)
        raise
    except Exception as e:
        logger.error(
            "side_effect.failed",
            owner_id=owner_id,
            key=key,
            error=str(e),
            error_type=type(e).__name__,
        )
        await release_claim(storage, owner_id, key)
        raise SideEffectError(
            f"Side effect failed for key {key}: {e}",
            owner_id=owner_id,
            key=key,
            cause=e,
        ) from e
    finally:
        decrement_inflight_claims()

    execution_time_ms = int((time.monotonic() - start_time) * 1000)

    if isinstance(result, BatchOutcome):
        response = aggregate_batch(result, owner_id, key)
    else:
        response = result

    try:
        await storage.complete(owner_id, key, **encode_response(response))
    except IdempotencyError:
        await release_claim(storage, owner_id, key)
        raise

    logger.info(
        "claim.completed",
        owner_id=owner_id,
        key=key,
        status_code=response.status_code,
        execution_time_ms=execution_time_ms,
    )
    return StateResult(
        response=response,
        was_replayed=False,
        execution_time_ms=execution_time_ms,
    )


async def wait_for_completion(
    storage: StorageAdapter,
    owner_id: str,
    key: str,
    started: float,
    deadline: float,
    poll_interval_seconds: float,
) -> IdempotencyRecord | None:
    """Poll an in-flight record until it completes or disappears.

    Args:
        storage: Storage adapter
        owner_id: Identity of the waiting caller
        key: Idempotency key
        started: ``time.monotonic()`` when the caller started
        deadline: ``time.monotonic()`` value after which waiting stops
        poll_interval_seconds: Delay between lookups

    Returns:
        The completed record, or None if the record no longer exists (the
        claimant released it) or is not visible to this caller.

    Raises:
        ClaimWaitTimeoutError: If the deadline passes while still in-flight.
    """
    logger.info("claim.waiting", owner_id=owner_id, key=key)

    while True:
        record = await storage.lookup(owner_id, key)
        if record is None or record.is_completed:
            return record

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            waited = time.monotonic() - started
            logger.warning(
                "claim.wait_timeout",
                owner_id=owner_id,
                key=key,
                waited_seconds=round(waited, 3),
            )
            raise ClaimWaitTimeoutError(
                f"Timed out waiting for in-flight request with key {key}",
                owner_id=owner_id,
                key=key,
                waited_seconds=waited,
            )

        await asyncio.sleep(min(poll_interval_seconds, remaining))


def aggregate_batch(batch: BatchOutcome, owner_id: str, key: str) -> ResponseSnapshot:
    """Log and count the item outcomes of a batch and return its response.

    Failed items never abort the batch or affect the claim.
    """
    for item in batch.items:
        record_batch_item(item.status)
        if item.status == "failed":
            logger.warning(
                "batch.item_failed",
                owner_id=owner_id,
                key=key,
                item=item.item,
                error=item.error,
            )

    logger.info(
        "batch.completed",
        owner_id=owner_id,
        key=key,
        succeeded=len(batch.succeeded),
        failed=len(batch.failed),
    )
    return batch.response


async def release_claim(storage: StorageAdapter, owner_id: str, key: str) -> None:
    """Release a claim while another error is propagating.

    A failure to release is logged so that the error that triggered the
    release is the one the caller sees.
    """
    try:
        await storage.release(owner_id, key)
    except StorageError as e:
        logger.error(
            "claim.release_failed",
            owner_id=owner_id,
            key=key,
            error=str(e),
        )
        return
    logger.info("claim.released", owner_id=owner_id, key=key)
