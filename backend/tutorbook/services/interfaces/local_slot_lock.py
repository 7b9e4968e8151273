"""
In-process slot lock strategy.
One asyncio.Lock per key; enough when a single worker serves the API.
"""

import asyncio
import time

from tutorbook.core.exceptions import ConflictReason, RaceLossError
from tutorbook.core.metrics import slot_lock_results, slot_lock_wait
from tutorbook.services.interfaces.slot_lock import SlotLock


class LocalSlotLock(SlotLock):
    """
    Keyed asyncio locks.

    Use when:
    - Running one API process (development, tests, small deployments)
    - Redis is not available

    Multiple workers must use RedisSlotLock; the database guards still catch
    whatever slips through, but as RaceLossError instead of a clean wait.
    """

    name = "local"

    def __init__(self, wait_seconds: float = 5.0):
        self.wait_seconds = wait_seconds
        self._locks: dict[str, asyncio.Lock] = {}
        # Holders plus waiters per key; the entry is dropped when it reaches zero
        self._users: dict[str, int] = {}

    async def acquire(self, key: str) -> asyncio.Lock:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        started = time.perf_counter()
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.wait_seconds)
        except asyncio.TimeoutError:
            self._forget(key)
            slot_lock_results.labels(strategy=self.name, result="timeout").inc()
            raise RaceLossError(
                ConflictReason.SLOT_TAKEN,
                "Another booking for this slot is in progress. Please try again.",
                details={"lock": key},
            ) from None
        except asyncio.CancelledError:
            self._forget(key)
            raise
        slot_lock_wait.observe(time.perf_counter() - started)
        slot_lock_results.labels(strategy=self.name, result="acquired").inc()
        return lock

    async def release(self, key: str, handle: asyncio.Lock) -> None:
        handle.release()
        self._forget(key)

    def _forget(self, key: str) -> None:
        self._users[key] -= 1
        if self._users[key] == 0:
            del self._users[key]
            del self._locks[key]
