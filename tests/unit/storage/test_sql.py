"""Unit tests for SQLStorageAdapter on SQLite (aiosqlite).

SQLite serialises writers across the whole database, so these tests only
hold one claim at a time. Row-level blocking between processes is a
PostgreSQL behaviour and is not exercised here.
"""

import asyncio

import pytest
import pytest_asyncio
from sqlalchemy import select

from idempotency_guard.exceptions import NoSuchClaimError
from idempotency_guard.models import ClaimStatus, ResponseSnapshot
from idempotency_guard.storage.sql import SQLStorageAdapter, create_schema, idempotency_table

HEADERS = [
    (b"location", b"/admin/newsletters"),
    (b"set-cookie", b"a=1"),
    (b"set-cookie", b"b=2"),
    (b"x-raw", b"\x00\xff"),
]


@pytest_asyncio.fixture
async def adapter(tmp_path):
    adapter = SQLStorageAdapter.from_url(
        f"sqlite+aiosqlite:///{tmp_path / 'idempotency.db'}",
        lock_timeout_seconds=0.2,
    )
    await create_schema(adapter.engine)
    yield adapter
    await adapter.dispose()


@pytest.mark.asyncio
async def test_claim_inserts_in_flight_row(adapter):
    outcome = await adapter.claim("U1", "abc-123")

    assert outcome.status == ClaimStatus.CLAIMED
    await adapter.complete("U1", "abc-123", 303, HEADERS, b"")


@pytest.mark.asyncio
async def test_complete_then_lookup_is_byte_exact(adapter):
    await adapter.claim("U1", "abc-123")
    await adapter.complete("U1", "abc-123", 303, HEADERS, b"\x00binary")

    record = await adapter.lookup("U1", "abc-123")

    assert record.is_completed
    assert record.response_status_code == 303
    assert record.response_headers == HEADERS
    assert record.response_body == b"\x00binary"


@pytest.mark.asyncio
async def test_claim_after_completion_replays(adapter):
    await adapter.claim("U1", "abc-123")
    await adapter.complete("U1", "abc-123", 303, HEADERS, b"ok")

    outcome = await adapter.claim("U1", "abc-123")

    assert outcome.status == ClaimStatus.ALREADY_CLAIMED_OR_COMPLETED
    assert outcome.saved_response == ResponseSnapshot(
        status_code=303, headers=HEADERS, body=b"ok"
    )


@pytest.mark.asyncio
async def test_release_rolls_back_insert(adapter):
    await adapter.claim("U1", "abc-123")

    await adapter.release("U1", "abc-123")

    assert await adapter.lookup("U1", "abc-123") is None
    async with adapter.engine.connect() as conn:
        rows = (await conn.execute(select(idempotency_table))).all()
    assert rows == []

    retry = await adapter.claim("U1", "abc-123")
    assert retry.is_claimed
    await adapter.release("U1", "abc-123")


@pytest.mark.asyncio
async def test_release_without_claim_is_noop(adapter):
    await adapter.release("U1", "abc-123")
    assert await adapter.lookup("U1", "abc-123") is None


@pytest.mark.asyncio
async def test_complete_without_claim_raises(adapter):
    with pytest.raises(NoSuchClaimError):
        await adapter.complete("U1", "abc-123", 200, [], b"")


@pytest.mark.asyncio
async def test_complete_twice_raises(adapter):
    await adapter.claim("U1", "abc-123")
    await adapter.complete("U1", "abc-123", 303, HEADERS, b"first")

    with pytest.raises(NoSuchClaimError):
        await adapter.complete("U1", "abc-123", 500, [], b"second")

    record = await adapter.lookup("U1", "abc-123")
    assert record.response_body == b"first"


@pytest.mark.asyncio
async def test_same_key_different_owners(adapter):
    await adapter.claim("U1", "k1")
    await adapter.complete("U1", "k1", 200, [], b"u1")

    outcome = await adapter.claim("U2", "k1")
    assert outcome.is_claimed
    await adapter.complete("U2", "k1", 200, [], b"u2")

    assert (await adapter.lookup("U1", "k1")).response_body == b"u1"
    assert (await adapter.lookup("U2", "k1")).response_body == b"u2"


@pytest.mark.asyncio
async def test_in_process_duplicate_waits_for_completion(adapter):
    await adapter.claim("U1", "abc-123")

    waiter = asyncio.create_task(adapter.claim("U1", "abc-123"))
    await asyncio.sleep(0.02)
    assert not waiter.done()

    await adapter.complete("U1", "abc-123", 303, HEADERS, b"ok")
    outcome = await asyncio.wait_for(waiter, timeout=1)

    assert outcome.saved_response.body == b"ok"


@pytest.mark.asyncio
async def test_in_process_duplicate_times_out_as_in_flight(adapter):
    await adapter.claim("U1", "abc-123")

    outcome = await adapter.claim("U1", "abc-123")

    assert outcome.is_in_flight
    await adapter.release("U1", "abc-123")
