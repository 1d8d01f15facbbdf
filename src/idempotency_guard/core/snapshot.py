"""Response snapshot codec for the idempotency guard.

This module converts between the in-memory :class:`ResponseSnapshot` and the
response columns of an idempotency record. The conversion is lossless:

1. Status code is stored as an integer
2. Header names and values are kept as raw bytes, in order, with duplicates
3. The body is stored as raw bytes

For backends whose header column is JSON, :func:`encode_headers` and
:func:`decode_headers` base64-encode every name and value so that bytes which
are not valid UTF-8 survive the round trip unchanged.

A replayed response is therefore byte-identical to the response produced by
the first execution. No volatile header is dropped and no replay marker is
added.

Examples:
    Saving and replaying::

        from idempotency_guard.core.snapshot import decode_response, encode_response

        columns = encode_response(snapshot)
        await storage.complete(owner_id, key, **columns)

        record = await storage.lookup(owner_id, key)
        replayed = decode_response(record)
        assert replayed == snapshot
"""

import base64
from typing import TypedDict

from idempotency_guard.exceptions import RecordNotCompletedError
from idempotency_guard.models import IdempotencyRecord, ResponseSnapshot


class ResponseColumns(TypedDict):
    """Response fields of an idempotency record, keyed by column name."""

    response_status_code: int
    response_headers: list[tuple[bytes, bytes]]
    response_body: bytes


def encode_response(snapshot: ResponseSnapshot) -> ResponseColumns:
    """Convert a response snapshot into record columns.

    Args:
        snapshot: The response produced by the side effect.

    Returns:
        The three response columns, ready to be passed to
        ``StorageAdapter.complete`` as keyword arguments.
    """
    return ResponseColumns(
        response_status_code=snapshot.status_code,
        response_headers=[(bytes(name), bytes(value)) for name, value in snapshot.headers],
        response_body=bytes(snapshot.body),
    )


def decode_response(record: IdempotencyRecord) -> ResponseSnapshot:
    """Rebuild the saved response of a completed record.

    Args:
        record: A completed idempotency record.

    Returns:
        The saved response, identical to the one that was completed.

    Raises:
        RecordNotCompletedError: If the record is still in-flight.

    Examples:
        >>> record = IdempotencyRecord(
        ...     owner_id="U1",
        ...     idempotency_key="abc-123",
        ...     response_status_code=200,
        ...     response_headers=[(b"content-type", b"text/plain")],
        ...     response_body=b"ok",
        ...     created_at=datetime.now(UTC),
        ... )
        >>> decode_response(record).body
        b'ok'
    """
    if (
        record.response_status_code is None
        or record.response_headers is None
        or record.response_body is None
    ):
        raise RecordNotCompletedError(
            f"Record for key {record.idempotency_key} has no saved response",
            owner_id=record.owner_id,
            key=record.idempotency_key,
        )

    return ResponseSnapshot(
        status_code=record.response_status_code,
        headers=list(record.response_headers),
        body=record.response_body,
    )


def encode_headers(headers: list[tuple[bytes, bytes]]) -> list[list[str]]:
    """Encode header pairs for a JSON column.

    Example:
        >>> encode_headers([(b"x-raw", b"\\xff")])
        [['eC1yYXc=', '/w==']]
    """
    return [
        [base64.b64encode(name).decode("ascii"), base64.b64encode(value).decode("ascii")]
        for name, value in headers
    ]


def decode_headers(column: list[list[str]]) -> list[tuple[bytes, bytes]]:
    """Decode header pairs stored by :func:`encode_headers`.

    Raises:
        ValueError: If an entry is not a base64 (name, value) pair.
    """
    headers: list[tuple[bytes, bytes]] = []
    for entry in column:
        if len(entry) != 2:
            raise ValueError(f"Header entry must be a (name, value) pair, got {entry!r}")
        try:
            name = base64.b64decode(entry[0], validate=True)
            value = base64.b64decode(entry[1], validate=True)
        except Exception as e:
            raise ValueError(f"Failed to decode stored header: {e}") from e
        headers.append((name, value))
    return headers
