"""Unit tests for IdempotencyGuard.

Covers key validation before any storage access, pass-through of the state
machine's results and errors, and the configured key length limit.
"""

import pytest

from idempotency_guard.config import IdempotencyConfig
from idempotency_guard.core.guard import IdempotencyGuard
from idempotency_guard.exceptions import (
    EmptyKeyError,
    KeyTooLongError,
    SideEffectError,
)
from idempotency_guard.storage.memory import MemoryStorageAdapter
from tests.conftest import CountingSideEffect


@pytest.mark.asyncio
async def test_execute_returns_response(guard, side_effect):
    response = await guard.execute("U1", "abc-123", side_effect)

    assert response == side_effect.response
    assert side_effect.calls == 1


@pytest.mark.asyncio
async def test_execute_with_result_reports_replay(guard, side_effect):
    first = await guard.execute_with_result("U1", "abc-123", side_effect)
    second = await guard.execute_with_result("U1", "abc-123", side_effect)

    assert first.was_replayed is False
    assert second.was_replayed is True
    assert second.response == first.response


@pytest.mark.asyncio
async def test_default_config():
    guard = IdempotencyGuard(MemoryStorageAdapter())
    assert guard.config == IdempotencyConfig()


@pytest.mark.asyncio
@pytest.mark.parametrize("raw_key", ["", "   "])
async def test_empty_key_rejected_before_claim(guard, storage, side_effect, raw_key):
    with pytest.raises(EmptyKeyError):
        await guard.execute("U1", raw_key, side_effect)

    assert side_effect.calls == 0
    assert len(storage) == 0


@pytest.mark.asyncio
async def test_long_key_rejected_before_claim(guard, storage, side_effect):
    with pytest.raises(KeyTooLongError):
        await guard.execute("U1", "k" * 51, side_effect)

    assert side_effect.calls == 0
    assert len(storage) == 0


@pytest.mark.asyncio
async def test_key_at_limit_accepted(guard, side_effect):
    await guard.execute("U1", "k" * 50, side_effect)
    assert side_effect.calls == 1


@pytest.mark.asyncio
async def test_configured_key_length_applies(storage, side_effect):
    guard = IdempotencyGuard(storage, IdempotencyConfig(max_key_length=8))

    await guard.execute("U1", "12345678", side_effect)
    with pytest.raises(KeyTooLongError) as exc_info:
        await guard.execute("U1", "123456789", side_effect)

    assert exc_info.value.max_length == 8


@pytest.mark.asyncio
async def test_side_effect_error_propagates(guard):
    side_effect = CountingSideEffect(fail_times=1)

    with pytest.raises(SideEffectError):
        await guard.execute("U1", "abc-123", side_effect)

    await guard.execute("U1", "abc-123", side_effect)
    assert side_effect.calls == 2
