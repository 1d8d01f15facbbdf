"""Validation of client-supplied idempotency keys."""

from idempotency_guard.exceptions import EmptyKeyError, KeyTooLongError
from idempotency_guard.models import IdempotencyKey

DEFAULT_MAX_KEY_LENGTH = 50


def validate_key(raw: str, max_length: int = DEFAULT_MAX_KEY_LENGTH) -> IdempotencyKey:
    """Validate a raw idempotency key.

    Checks:
    - Key is not empty once surrounding whitespace is ignored
    - Key length does not exceed ``max_length`` characters

    The returned key wraps the raw string unchanged.

    Args:
        raw: The key as supplied by the client.
        max_length: Maximum accepted length in characters.

    Returns:
        The validated, immutable key.

    Raises:
        EmptyKeyError: If the key is empty or whitespace only.
        KeyTooLongError: If the key is longer than ``max_length``.

    Examples:
        >>> validate_key("abc-123").value
        'abc-123'
        >>> validate_key("x" * 50).value == "x" * 50
        True
    """
    if not raw.strip():
        raise EmptyKeyError("Idempotency key cannot be empty", raw_key=raw)

    if len(raw) > max_length:
        raise KeyTooLongError(
            f"Idempotency key exceeds maximum length of {max_length} characters",
            raw_key=raw,
            length=len(raw),
            max_length=max_length,
        )

    return IdempotencyKey(value=raw)
