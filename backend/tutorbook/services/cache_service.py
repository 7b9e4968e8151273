"""
Redis caching service for tutor schedules.

CACHING STRATEGY
================

What we cache:
  - Tutor schedule responses (open windows + occupied slots for a date range)
  - Cache key pattern: "schedule:{tutor_id}:{from_date}:{to_date}"

Invalidation strategy:
  - Every booking mutation for a tutor (create, reschedule, cancel, payment,
    dispute refund, availability change) deletes all of that tutor's keys
  - TTL-based expiry as safety net (REDIS_CACHE_TTL)

  Keys share the prefix "schedule:{tutor_id}:" so we can SCAN and delete them.

Booking decisions never read this cache; the conflict checker always reads
the database.
"""

import json
from datetime import date
from typing import Optional

from redis.exceptions import RedisError

from tutorbook.core.config import get_settings
from tutorbook.core.logging import get_logger
from tutorbook.core.metrics import record_cache_operation
from tutorbook.infrastructure.redis_client import get_redis

logger = get_logger(__name__)


def _make_schedule_key(tutor_id: str, from_date: date, to_date: date) -> str:
    return f"schedule:{tutor_id}:{from_date.isoformat()}:{to_date.isoformat()}"


async def get_cached_schedule(tutor_id: str, from_date: date, to_date: date) -> Optional[dict]:
    """Retrieve a cached schedule response."""
    client = await get_redis()
    if not client:
        return None

    key = _make_schedule_key(tutor_id, from_date, to_date)
    try:
        data = await client.get(key)
    except RedisError as e:
        logger.error("cache_get_error", key=key, error=str(e))
        return None

    record_cache_operation("get", hit=data is not None)
    if data:
        logger.debug("cache_hit", key=key)
        return json.loads(data)
    logger.debug("cache_miss", key=key)
    return None


async def set_cached_schedule(tutor_id: str, from_date: date, to_date: date, data: dict) -> None:
    """Cache a schedule response with TTL."""
    client = await get_redis()
    if not client:
        return

    ttl = get_settings().REDIS_CACHE_TTL
    key = _make_schedule_key(tutor_id, from_date, to_date)
    try:
        await client.setex(key, ttl, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=ttl)
    except RedisError as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_tutor_schedule(tutor_id: str) -> None:
    """Drop every cached schedule of one tutor."""
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"schedule:{tutor_id}:*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", tutor_id=tutor_id, keys_deleted=deleted)
    except RedisError as e:
        logger.error("cache_invalidation_error", tutor_id=tutor_id, error=str(e))
