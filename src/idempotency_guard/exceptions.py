"""Custom exceptions for the idempotency guard.

This module defines the exception hierarchy used throughout the guard to
signal key validation failures, storage failures, side-effect failures and
internal consistency errors. Every exception carries a typed payload so that
callers can react to the cause without parsing messages.

Examples:
    Handling a validation error::

        from idempotency_guard.exceptions import KeyValidationError

        try:
            response = await guard.execute(owner_id, raw_key, publish)
        except KeyValidationError as e:
            logger.info("key.rejected", raw_key=e.raw_key, error=e.message)
            return Response(status_code=400)

    Handling a side-effect error::

        from idempotency_guard.exceptions import SideEffectError

        try:
            response = await guard.execute(owner_id, raw_key, publish)
        except SideEffectError as e:
            # The claim was released, a retry with the same key may re-attempt
            logger.error("publish.failed", key=e.key, cause=repr(e.cause))
            return Response(status_code=500)
"""


class IdempotencyError(Exception):
    """Base exception for all idempotency-related errors.

    All exceptions raised by the idempotency guard inherit from this base
    class, allowing callers to catch all guard-specific errors with a single
    except clause.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        """Initialize the exception with a message.

        Args:
            message: Human-readable error description.
        """
        self.message = message
        super().__init__(message)


class KeyValidationError(IdempotencyError):
    """The client-supplied idempotency key is not acceptable.

    Raised before any store interaction. This is a caller input error and
    should be surfaced as HTTP 400.

    Attributes:
        message: Human-readable error description.
        raw_key: The rejected raw key.
    """

    def __init__(self, message: str, raw_key: str) -> None:
        super().__init__(message)
        self.raw_key = raw_key


class EmptyKeyError(KeyValidationError):
    """The idempotency key is empty (or whitespace only)."""


class KeyTooLongError(KeyValidationError):
    """The idempotency key exceeds the configured maximum length.

    Attributes:
        length: Length of the rejected key in characters.
        max_length: The configured maximum.
    """

    def __init__(self, message: str, raw_key: str, length: int, max_length: int) -> None:
        super().__init__(message, raw_key)
        self.length = length
        self.max_length = max_length


class StorageError(IdempotencyError):
    """Storage backend operation failed.

    Raised when the durable backend cannot complete a claim, completion,
    lookup or release (connection failures, transaction errors, constraint
    errors other than the expected uniqueness conflict). Storage errors are
    not retried inside the guard; the failed transaction leaves no partial
    record behind.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception that caused the storage error.

    Examples:
        Raising a storage error::

            try:
                await conn.execute(stmt)
            except SQLAlchemyError as e:
                raise StorageError(
                    message=f"Failed to claim idempotency key: {e}",
                    cause=e,
                ) from e
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        """Initialize the storage error with details.

        Args:
            message: Human-readable error description.
            cause: The underlying exception that caused the storage error.
        """
        super().__init__(message)
        self.cause = cause


class SideEffectError(IdempotencyError):
    """The guarded side effect raised an exception.

    The claim has been released when this is raised, so a later retry with
    the same key will execute the side effect again. A failure is never saved
    as a completion.

    Attributes:
        owner_id: Identity of the caller that held the claim.
        key: The idempotency key.
        cause: The exception raised by the side effect.
    """

    def __init__(
        self,
        message: str,
        owner_id: str,
        key: str,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.owner_id = owner_id
        self.key = key
        self.cause = cause


class RecordNotCompletedError(IdempotencyError):
    """A record was decoded before its response was saved.

    This is a programming error: callers must check the completion state of a
    record before decoding its response snapshot.
    """

    def __init__(self, message: str, owner_id: str, key: str) -> None:
        super().__init__(message)
        self.owner_id = owner_id
        self.key = key


class NoSuchClaimError(IdempotencyError):
    """A completion was attempted for a pair that holds no in-flight claim.

    Only the claimant may complete a record, and only once. Seeing this error
    means the guard's protocol was bypassed.
    """

    def __init__(self, message: str, owner_id: str, key: str) -> None:
        super().__init__(message)
        self.owner_id = owner_id
        self.key = key


class ClaimWaitTimeoutError(IdempotencyError):
    """Waiting for another caller's in-flight claim took too long.

    Raised when the bounded wait for a concurrent claimant to complete
    expires. Clients should retry later with the same key.

    Attributes:
        owner_id: Identity of the waiting caller.
        key: The idempotency key.
        waited_seconds: How long the caller waited before giving up.
    """

    def __init__(self, message: str, owner_id: str, key: str, waited_seconds: float) -> None:
        super().__init__(message)
        self.owner_id = owner_id
        self.key = key
        self.waited_seconds = waited_seconds
