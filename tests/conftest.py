"""
Pytest configuration and shared fixtures for idempotency_guard tests.
"""

import asyncio

import pytest

from idempotency_guard.config import IdempotencyConfig
from idempotency_guard.core.guard import IdempotencyGuard
from idempotency_guard.models import ResponseSnapshot
from idempotency_guard.storage.memory import MemoryStorageAdapter


class CountingSideEffect:
    """Side effect that counts executions and returns a fixed response.

    ``delay`` keeps the claim in-flight long enough for concurrent callers to
    pile up; ``fail_times`` makes the first N executions raise.
    """

    def __init__(
        self,
        response: ResponseSnapshot | None = None,
        delay: float = 0.0,
        fail_times: int = 0,
    ) -> None:
        self.response = response or ResponseSnapshot(
            status_code=200,
            headers=[(b"content-type", b"text/plain")],
            body=b"published",
        )
        self.delay = delay
        self.fail_times = fail_times
        self.calls = 0

    async def __call__(self) -> ResponseSnapshot:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.calls <= self.fail_times:
            raise ConnectionError(f"transport failure #{self.calls}")
        return self.response


@pytest.fixture
def sample_idempotency_key() -> str:
    """Provide a sample idempotency key for tests."""
    return "abc-123"


@pytest.fixture
def fast_config() -> IdempotencyConfig:
    """Configuration with short waits so timeout paths finish quickly."""
    return IdempotencyConfig(wait_timeout_seconds=0.5, poll_interval_seconds=0.01)


@pytest.fixture
def storage() -> MemoryStorageAdapter:
    return MemoryStorageAdapter()


@pytest.fixture
def guard(storage, fast_config) -> IdempotencyGuard:
    return IdempotencyGuard(storage, fast_config)


@pytest.fixture
def side_effect() -> CountingSideEffect:
    return CountingSideEffect()
