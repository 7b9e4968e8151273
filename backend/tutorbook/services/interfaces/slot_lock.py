"""
Slot lock strategy interface.
Serializes check-then-write sequences on a tutor's calendar.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, AsyncIterator, Iterable


def slot_key(tutor_id: str, session_date: date) -> str:
    return f"slot:{tutor_id}:{session_date.isoformat()}"


class SlotLock(ABC):
    """
    Interface for tutor-slot mutual exclusion.

    Implementations:
    - LocalSlotLock: asyncio locks, correct for a single worker process
    - RedisSlotLock: distributed lock shared by every worker

    Keys are acquired in sorted order so two requests touching the same pair
    of dates can never deadlock.
    """

    name: str = "abstract"

    @abstractmethod
    async def acquire(self, key: str) -> Any:
        """
        Block until the key is held by the caller and return a release handle.

        Raises:
            RaceLossError: if the lock could not be obtained within the wait budget
        """

    @abstractmethod
    async def release(self, key: str, handle: Any) -> None:
        """Release a key using the handle returned by `acquire`."""

    @asynccontextmanager
    async def hold(self, keys: Iterable[str]) -> AsyncIterator[None]:
        ordered = sorted(set(keys))
        held: list[tuple[str, Any]] = []
        try:
            for key in ordered:
                held.append((key, await self.acquire(key)))
            yield
        finally:
            for key, handle in reversed(held):
                await self.release(key, handle)
