"""Core type definitions and models for the idempotency guard.

This module provides the fundamental data structures used throughout the
guard: validated idempotency keys, response snapshots, durable idempotency
records, claim outcomes and the tagged per-item results of batched side
effects.

Examples:
    Creating an in-flight record::

        from datetime import UTC, datetime
        from idempotency_guard.models import IdempotencyRecord

        record = IdempotencyRecord(
            owner_id="user-1",
            idempotency_key="abc-123",
            created_at=datetime.now(UTC),
        )
        assert record.is_in_flight

    Building a response snapshot::

        snapshot = ResponseSnapshot(
            status_code=303,
            headers=[(b"location", b"/admin/newsletters")],
            body=b"",
        )
"""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, model_validator


class IdempotencyKey(BaseModel):
    """A validated idempotency key.

    Instances are immutable and should only be built through
    :func:`idempotency_guard.keys.validate_key`, which enforces the non-empty
    and maximum-length rules.

    Attributes:
        value: The raw key string as supplied by the client.

    Examples:
        >>> key = IdempotencyKey(value="abc-123")
        >>> str(key)
        'abc-123'
        >>> key.as_bytes()
        b'abc-123'
    """

    value: str = Field(
        ...,
        description="Raw idempotency key supplied by the client",
        examples=["abc-123", "0b6e1f7c-2f1c-4a4e-9d7e-8e2f3a9c1b55"],
    )

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return self.value

    def as_bytes(self) -> bytes:
        """Return the key encoded as UTF-8 bytes for storage."""
        return self.value.encode("utf-8")


class ResponseSnapshot(BaseModel):
    """An HTTP-like response that can be saved and replayed byte for byte.

    Header names and values are raw bytes. They are never re-interpreted as
    text, so a replayed response is identical to the original even when a
    header value is not valid UTF-8. Header order and duplicates are kept.

    Attributes:
        status_code: HTTP status code (e.g., 200, 303, 500).
        headers: Ordered (name, value) pairs.
        body: Response body.

    Examples:
        >>> snapshot = ResponseSnapshot(
        ...     status_code=200,
        ...     headers=[(b"content-type", b"text/plain")],
        ...     body=b"ok",
        ... )
        >>> snapshot.header(b"Content-Type")
        b'text/plain'
    """

    status_code: int = Field(
        ...,
        description="HTTP status code",
        ge=100,
        le=599,
        examples=[200, 303, 500],
    )
    headers: list[tuple[bytes, bytes]] = Field(
        default_factory=list,
        description="Ordered response header pairs as raw bytes",
    )
    body: bytes = Field(
        default=b"",
        description="Response body",
    )

    model_config = {"frozen": True}

    def header(self, name: bytes) -> bytes | None:
        """Return the first value of a header, matching the name case-insensitively."""
        wanted = name.lower()
        for header_name, value in self.headers:
            if header_name.lower() == wanted:
                return value
        return None


class IdempotencyRecord(BaseModel):
    """Durable record of one (owner_id, idempotency_key) pair.

    A record is created in the in-flight state (all response fields ``None``)
    by the caller that wins the claim, and transitions exactly once to the
    completed state (all response fields set) when that caller saves its
    response. A partially populated record is rejected.

    Attributes:
        owner_id: Identity of the caller that claimed the key.
        idempotency_key: The validated key string.
        response_status_code: Saved status code, None while in-flight.
        response_headers: Saved header pairs, None while in-flight.
        response_body: Saved body, None while in-flight.
        created_at: When the claim was created. Used for housekeeping only.
    """

    owner_id: str = Field(
        ...,
        description="Opaque identity of the claiming caller",
        min_length=1,
        max_length=255,
    )
    idempotency_key: str = Field(
        ...,
        description="The validated idempotency key",
        min_length=1,
        max_length=255,
    )
    response_status_code: int | None = Field(
        default=None,
        description="Saved HTTP status code (set on completion)",
        ge=100,
        le=599,
    )
    response_headers: list[tuple[bytes, bytes]] | None = Field(
        default=None,
        description="Saved response header pairs (set on completion)",
    )
    response_body: bytes | None = Field(
        default=None,
        description="Saved response body (set on completion)",
    )
    created_at: datetime = Field(
        ...,
        description="Timestamp when the claim was created",
    )

    @model_validator(mode="after")
    def validate_response_fields(self) -> "IdempotencyRecord":
        """Reject records whose response fields are only partially populated.

        Returns:
            The validated record.

        Raises:
            ValueError: If some but not all response fields are set.
        """
        fields = (self.response_status_code, self.response_headers, self.response_body)
        populated = sum(field is not None for field in fields)
        if populated not in (0, len(fields)):
            raise ValueError(
                "response_status_code, response_headers and response_body "
                "must be either all set or all None"
            )
        return self

    @property
    def is_completed(self) -> bool:
        return self.response_status_code is not None

    @property
    def is_in_flight(self) -> bool:
        return self.response_status_code is None


class ClaimStatus(str, Enum):
    """Result kind of an attempt to claim an idempotency key.

    Attributes:
        CLAIMED: The caller now exclusively owns execution of the side effect.
        ALREADY_CLAIMED_OR_COMPLETED: A record already existed for the pair.
    """

    CLAIMED = "CLAIMED"
    ALREADY_CLAIMED_OR_COMPLETED = "ALREADY_CLAIMED_OR_COMPLETED"


class ClaimOutcome(BaseModel):
    """Result of :meth:`StorageAdapter.claim`.

    When the status is ``ALREADY_CLAIMED_OR_COMPLETED`` the saved response is
    present if the existing record is completed, and None if it is still
    in-flight.

    Examples:
        >>> ClaimOutcome.claimed().is_claimed
        True
        >>> ClaimOutcome.conflict(None).is_in_flight
        True
    """

    status: ClaimStatus = Field(..., description="Whether the claim was won")
    saved_response: ResponseSnapshot | None = Field(
        default=None,
        description="Saved response of the existing completed record, if any",
    )

    @model_validator(mode="after")
    def validate_saved_response_with_status(self) -> "ClaimOutcome":
        """A won claim can never carry a saved response."""
        if self.status == ClaimStatus.CLAIMED and self.saved_response is not None:
            raise ValueError("saved_response must be None when the key was claimed")
        return self

    @classmethod
    def claimed(cls) -> "ClaimOutcome":
        return cls(status=ClaimStatus.CLAIMED)

    @classmethod
    def conflict(cls, saved_response: ResponseSnapshot | None) -> "ClaimOutcome":
        return cls(
            status=ClaimStatus.ALREADY_CLAIMED_OR_COMPLETED,
            saved_response=saved_response,
        )

    @property
    def is_claimed(self) -> bool:
        return self.status == ClaimStatus.CLAIMED

    @property
    def is_in_flight(self) -> bool:
        return self.status == ClaimStatus.ALREADY_CLAIMED_OR_COMPLETED and (
            self.saved_response is None
        )


class ItemOutcome(BaseModel):
    """Outcome of one item of a batched side effect.

    Attributes:
        item: Identifier of the item (e.g. the recipient address).
        status: "succeeded" or "failed".
        error: Failure description when status is "failed".
    """

    item: str
    status: Literal["succeeded", "failed"]
    error: str | None = None

    @classmethod
    def success(cls, item: str) -> "ItemOutcome":
        return cls(item=item, status="succeeded")

    @classmethod
    def failure(cls, item: str, error: str) -> "ItemOutcome":
        return cls(item=item, status="failed", error=error)


class BatchOutcome(BaseModel):
    """Result of a side effect that fans out over many items.

    Per-item failures do not abort the batch. The guard logs each failed item
    and saves ``response`` as the result of the whole batch.

    Attributes:
        response: The response returned to the first caller and replayed.
        items: Per-item outcomes in processing order.
    """

    response: ResponseSnapshot
    items: list[ItemOutcome] = Field(default_factory=list)

    @property
    def succeeded(self) -> list[ItemOutcome]:
        return [item for item in self.items if item.status == "succeeded"]

    @property
    def failed(self) -> list[ItemOutcome]:
        return [item for item in self.items if item.status == "failed"]
