"""
Pytest fixtures for test database, client, and collaborators.

Each test gets its own SQLite file database, so tests are isolated and
concurrent requests really run on separate connections. External
collaborators (payment gateway, notifier, user directory) are replaced with
in-memory fakes through FastAPI dependency overrides, and the clock is
pinned to a fixed instant.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime, time
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tutorbook.core import clock
from tutorbook.core.exceptions import BookingError
from tutorbook.db.base import Base
from tutorbook.db.session import get_db
from tutorbook.main import app
from tutorbook.services.availability_service import set_weekly_availability
from tutorbook.services.interfaces import (
    BankDetails,
    LocalSlotLock,
    Notifier,
    PayerInfo,
    PaymentGateway,
    UserDirectory,
    UserProfile,
    VerificationResult,
)
from tutorbook.services.strategy_factory import (
    get_notifier,
    get_payment_gateway,
    get_slot_lock,
    get_user_directory,
)

# Monday 24 June 2024, 08:00 local time
FIXED_NOW = datetime(2024, 6, 24, 8, 0)

TUTOR = "tutor-1"
OTHER_TUTOR = "tutor-2"
STUDENTS = [f"student-{c}" for c in "abcdefgh"]


class FakeNotifier(Notifier):
    def __init__(self):
        self.sent: list[tuple[str, str, str]] = []

    async def notify(self, user_id: str, message: str, kind: str = "info") -> None:
        self.sent.append((user_id, message, kind))

    def messages_for(self, user_id: str) -> list[str]:
        return [message for uid, message, _ in self.sent if uid == user_id]


class FakeGateway(PaymentGateway):
    """Records every call; outcomes are set per test."""

    name = "chapa"

    def __init__(self):
        self.checkouts: list[str] = []
        self.refunds: list[tuple[str, BankDetails, Decimal, str]] = []
        self.verify_status = "completed"
        self.refund_error: Optional[BookingError] = None
        self.checkout_error: Optional[BookingError] = None

    async def init_checkout(self, amount, payer: PayerInfo, tx_ref, callback_url, return_url) -> str:
        if self.checkout_error:
            raise self.checkout_error
        self.checkouts.append(tx_ref)
        return f"https://checkout.test/{tx_ref}"

    async def verify(self, tx_ref: str) -> VerificationResult:
        return VerificationResult(tx_ref=tx_ref, status=self.verify_status)

    async def refund(self, tx_ref, bank, amount, reference) -> str:
        if self.refund_error:
            raise self.refund_error
        self.refunds.append((tx_ref, bank, amount, reference))
        return f"transfer-{len(self.refunds)}"


class FakeDirectory(UserDirectory):
    def __init__(self):
        self.users: dict[str, UserProfile] = {}

    def add(self, user_id: str, role: str, name: Optional[str] = None) -> None:
        self.users[user_id] = UserProfile(id=user_id, name=name or user_id.title(), role=role)

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        return self.users.get(user_id)


@pytest.fixture(autouse=True)
def fixed_clock(monkeypatch):
    """Pin 'now' so slot-in-the-past and completion checks are deterministic."""
    monkeypatch.setattr(clock, "now", lambda: FIXED_NOW)
    return FIXED_NOW


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh SQLite database per test with every table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tutorbook_test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def slot_lock() -> LocalSlotLock:
    return LocalSlotLock(wait_seconds=5.0)


@pytest.fixture
def directory() -> FakeDirectory:
    users = FakeDirectory()
    users.add(TUTOR, "tutor", "Abebe")
    users.add(OTHER_TUTOR, "tutor", "Sara")
    for student in STUDENTS:
        users.add(student, "student")
    return users


@pytest.fixture
def collaborators(slot_lock, directory, notifier) -> dict:
    """Keyword arguments every booking-service call needs."""
    return {"slot_lock": slot_lock, "users": directory, "notifier": notifier}


@pytest_asyncio.fixture
async def monday_morning(db_session: AsyncSession) -> None:
    """TUTOR is available Mondays 09:00-12:00 only."""
    await set_weekly_availability(db_session, TUTOR, {"monday": (True, time(9, 0), time(12, 0))})


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, slot_lock, directory, notifier, gateway) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with a fresh DB session per request and fake collaborators."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_slot_lock] = lambda: slot_lock
    app.dependency_overrides[get_user_directory] = lambda: directory
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def booking_payload(**overrides) -> dict:
    payload = {
        "tutor_id": TUTOR,
        "student_id": STUDENTS[0],
        "session_date": "2024-07-01",
        "session_time": "09:00",
        "subject": "Mathematics",
        "session_type": "individual",
        "price": "100.00",
    }
    payload.update(overrides)
    return payload
