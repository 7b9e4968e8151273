"""
Tests for schedule caching and best-effort collaborators.
"""

import fnmatch

import pytest
from httpx import AsyncClient
from redis.exceptions import RedisError

from conftest import TUTOR, booking_payload
from tutorbook.services import cache_service
from tutorbook.services.interfaces import Notifier
from tutorbook.services.notification_service import notify_safely
from tutorbook.services.user_directory_service import UnverifiedUserDirectory


class FakeRedis:
    """The handful of Redis commands the schedule cache uses."""

    def __init__(self):
        self.store: dict[str, str] = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value

    async def delete(self, key):
        self.store.pop(key, None)

    async def scan_iter(self, match="*", count=None):
        for key in list(self.store):
            if fnmatch.fnmatch(key, match):
                yield key


class BrokenRedis(FakeRedis):
    async def get(self, key):
        raise RedisError("connection reset")


@pytest.fixture
def fake_redis(monkeypatch) -> FakeRedis:
    redis = FakeRedis()

    async def get_fake():
        return redis

    monkeypatch.setattr(cache_service, "get_redis", get_fake)
    return redis


@pytest.mark.asyncio
async def test_schedule_served_from_cache_until_booking(client: AsyncClient, monday_morning, fake_redis):
    params = {"from_date": "2024-07-01", "to_date": "2024-07-07"}

    first = await client.get(f"/api/v1/tutors/{TUTOR}/schedule", params=params)
    assert first.json()["cached"] is False
    assert f"schedule:{TUTOR}:2024-07-01:2024-07-07" in fake_redis.store

    second = await client.get(f"/api/v1/tutors/{TUTOR}/schedule", params=params)
    assert second.json()["cached"] is True
    assert second.json()["occupied"] == first.json()["occupied"]

    await client.post("/api/v1/bookings/", json=booking_payload())
    assert fake_redis.store == {}

    third = await client.get(f"/api/v1/tutors/{TUTOR}/schedule", params=params)
    assert third.json()["cached"] is False
    assert len(third.json()["occupied"]) == 1


@pytest.mark.asyncio
async def test_cache_errors_fall_back_to_database(client: AsyncClient, monday_morning, monkeypatch):
    async def get_broken():
        return BrokenRedis()

    monkeypatch.setattr(cache_service, "get_redis", get_broken)
    response = await client.get(
        f"/api/v1/tutors/{TUTOR}/schedule", params={"from_date": "2024-07-01", "to_date": "2024-07-07"}
    )
    assert response.status_code == 200
    assert response.json()["cached"] is False


class ExplodingNotifier(Notifier):
    async def notify(self, user_id, message, kind="info"):
        raise ConnectionError("notification service down")


@pytest.mark.asyncio
async def test_notification_failures_are_swallowed():
    await notify_safely(ExplodingNotifier(), "student-a", "hello")


@pytest.mark.asyncio
async def test_unverified_directory_accepts_any_id():
    profile = await UnverifiedUserDirectory().get_user("student-z")
    assert profile.id == "student-z"
    assert profile.display_name == "student-z"
