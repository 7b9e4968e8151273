"""
Distributed slot lock for multi-worker deployments.
Implements SlotLock using Redis locks.

Circuit Breaker Pattern:
  On Redis failure, the lock "fails open" and the request proceeds.
  The database stays authoritative: the partial unique index on individual
  slots and the cohort unique constraint still reject the loser of a race,
  which then surfaces as RaceLossError instead of waiting its turn.
"""

import time
from typing import Optional

from redis.asyncio.lock import Lock
from redis.exceptions import LockError, RedisError

from tutorbook.core.exceptions import ConflictReason, RaceLossError
from tutorbook.core.logging import get_logger
from tutorbook.core.metrics import slot_lock_results, slot_lock_wait
from tutorbook.infrastructure.redis_client import get_redis
from tutorbook.services.interfaces.slot_lock import SlotLock

logger = get_logger(__name__)


class RedisSlotLock(SlotLock):
    """
    Redis-backed slot lock.

    Use when:
    - More than one API worker serves bookings
    - Contention on popular tutors makes database-level retries expensive
    """

    name = "redis"

    def __init__(self, ttl_seconds: int = 15, wait_seconds: float = 5.0):
        self.ttl_seconds = ttl_seconds
        self.wait_seconds = wait_seconds

    async def acquire(self, key: str) -> Optional[Lock]:
        client = await get_redis()
        if client is None:
            slot_lock_results.labels(strategy=self.name, result="unavailable").inc()
            return None

        lock = client.lock(
            f"tutorbook:{key}",
            timeout=self.ttl_seconds,
            blocking_timeout=self.wait_seconds,
        )
        started = time.perf_counter()
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            # Fail open: the schema guards still hold
            slot_lock_results.labels(strategy=self.name, result="error").inc()
            logger.warning("slot_lock_redis_error", key=key, error=str(e))
            return None

        if not acquired:
            slot_lock_results.labels(strategy=self.name, result="timeout").inc()
            logger.warning("slot_lock_timeout", key=key, waited_s=self.wait_seconds)
            raise RaceLossError(
                ConflictReason.SLOT_TAKEN,
                "Another booking for this slot is in progress. Please try again.",
                details={"lock": key},
            )

        slot_lock_wait.observe(time.perf_counter() - started)
        slot_lock_results.labels(strategy=self.name, result="acquired").inc()
        return lock

    async def release(self, key: str, handle: Optional[Lock]) -> None:
        if handle is None:
            return
        try:
            await handle.release()
        except (LockError, RedisError) as e:
            # Expired under us; the TTL already freed it
            logger.warning("slot_lock_release_failed", key=key, error=str(e))
