"""Per-pair asyncio locks shared by the storage adapters.

A claimant holds the lock of its (owner_id, key) pair from ``claim`` until
``complete`` or ``release``. Conflicting claims from the same process queue on
that lock instead of hitting the backend, and pairs never share a lock.
"""

import asyncio

Pair = tuple[str, str]


class PairLocks:
    """Registry of asyncio.Lock objects keyed by (owner_id, key).

    Attributes:
        _locks: Dictionary mapping pairs to asyncio.Lock objects.
        _global_lock: Lock protecting the _locks dictionary.
    """

    def __init__(self) -> None:
        self._locks: dict[Pair, asyncio.Lock] = {}
        self._global_lock = asyncio.Lock()

    async def acquire(
        self, pair: Pair, timeout_seconds: float | None = None
    ) -> asyncio.Lock | None:
        """Acquire the lock of a pair.

        Args:
            pair: The (owner_id, key) pair.
            timeout_seconds: Give up after this long. None waits indefinitely.

        Returns:
            The acquired lock, or None if the timeout expired. A caller that
            gives the pair up right away must release this object rather than
            going through the registry, which may hold a newer lock by then.
        """
        async with self._global_lock:
            lock = self._locks.setdefault(pair, asyncio.Lock())

        if timeout_seconds is None:
            await lock.acquire()
            return lock

        try:
            await asyncio.wait_for(lock.acquire(), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            return None
        return lock

    def release(self, pair: Pair) -> None:
        lock = self._locks.get(pair)
        if lock is not None and lock.locked():
            lock.release()

    def retire(self, pair: Pair) -> None:
        """Release the lock of a completed pair and forget it.

        Only safe once the pair's record is completed: later claims create a
        fresh lock and immediately observe the completed record, while tasks
        already queued on the old lock still get it and observe the same.
        """
        lock = self._locks.pop(pair, None)
        if lock is not None and lock.locked():
            lock.release()

    def __len__(self) -> int:
        return len(self._locks)
