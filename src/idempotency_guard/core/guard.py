"""Framework-agnostic entry point of the idempotency guard.

The guard validates the caller's raw key, delegates to the state machine and
records the outcome in metrics. It knows nothing about HTTP; the adapters
package wraps it for ASGI applications.

Examples:
    Guarding a newsletter publication::

        from idempotency_guard.core.guard import IdempotencyGuard
        from idempotency_guard.storage.memory import MemoryStorageAdapter

        guard = IdempotencyGuard(MemoryStorageAdapter())

        async def publish():
            return publisher.publish(issue)

        response = await guard.execute("user-1", "abc-123", publish)
"""

from idempotency_guard.config import IdempotencyConfig
from idempotency_guard.core.state_machine import SideEffect, StateResult, process_request
from idempotency_guard.exceptions import (
    ClaimWaitTimeoutError,
    IdempotencyError,
    KeyValidationError,
)
from idempotency_guard.keys import validate_key
from idempotency_guard.models import ResponseSnapshot
from idempotency_guard.observability.metrics import record_execution_time, record_request
from idempotency_guard.storage.base import StorageAdapter


class IdempotencyGuard:
    """Runs side effects at most once per (owner_id, key) pair.

    Attributes:
        storage: Storage adapter holding the idempotency records
        config: Configuration object
    """

    def __init__(
        self,
        storage: StorageAdapter,
        config: IdempotencyConfig | None = None,
    ) -> None:
        self.storage = storage
        self.config = config or IdempotencyConfig()

    async def execute(
        self,
        owner_id: str,
        raw_key: str,
        side_effect: SideEffect,
    ) -> ResponseSnapshot:
        """Run ``side_effect`` once for the pair, or replay its saved response.

        Args:
            owner_id: Authenticated identity of the caller
            raw_key: Idempotency key exactly as the client supplied it
            side_effect: Async callable returning a ResponseSnapshot or a
                BatchOutcome

        Returns:
            The response of the first successful execution for the pair.

        Raises:
            KeyValidationError: If the key is empty or too long. No claim is
                attempted.
            SideEffectError: If the side effect failed. A retry may succeed.
            ClaimWaitTimeoutError: If a concurrent execution did not finish
                within the wait timeout.
            StorageError: If the storage backend failed.
        """
        result = await self.execute_with_result(owner_id, raw_key, side_effect)
        return result.response

    async def execute_with_result(
        self,
        owner_id: str,
        raw_key: str,
        side_effect: SideEffect,
    ) -> StateResult:
        """Like :meth:`execute` but also reports whether the response was replayed."""
        try:
            key = validate_key(raw_key, max_length=self.config.max_key_length)
        except KeyValidationError:
            record_request("invalid")
            raise

        try:
            result = await process_request(
                storage=self.storage,
                owner_id=owner_id,
                key=key,
                side_effect=side_effect,
                config=self.config,
            )
        except ClaimWaitTimeoutError:
            record_request("timeout")
            raise
        except IdempotencyError:
            record_request("error")
            raise

        if result.was_replayed:
            record_request("replay", result.response.status_code)
        else:
            record_request("new", result.response.status_code)
            if result.execution_time_ms is not None:
                record_execution_time(result.execution_time_ms)

        return result
