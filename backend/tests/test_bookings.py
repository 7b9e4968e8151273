"""
Tests for booking endpoints: creation rules, lifecycle and listing.
"""

from datetime import date, datetime, time
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import InvalidRequestError

from conftest import OTHER_TUTOR, STUDENTS, TUTOR, booking_payload
from tutorbook.core import clock
from tutorbook.models.booking import SessionType
from tutorbook.services import booking_service


@pytest.mark.asyncio
async def test_monday_scenario(client: AsyncClient, monday_morning, notifier):
    """
    Tutor available Monday 09:00-12:00.
    A books 2024-07-01 09:00; B is refused the same slot, individually and as a group.
    """
    response = await client.post("/api/v1/bookings/", json=booking_payload(student_id="student-a"))
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["is_paid"] is False
    assert data["session_type"] == "individual"
    assert Decimal(data["price"]) == Decimal("100")

    response = await client.post("/api/v1/bookings/", json=booking_payload(student_id="student-b"))
    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["reason"] == "slot_taken"
    assert detail["message"] == "Tutor is already booked for this slot"

    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(student_id="student-b", session_type="group"),
    )
    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["reason"] == "individual_occupies_slot"
    assert detail["message"] == "Tutor is already booked for an individual session at this slot"

    assert notifier.messages_for("student-a")
    assert notifier.messages_for(TUTOR)


@pytest.mark.asyncio
async def test_group_bookings_share_cohort(client: AsyncClient, monday_morning):
    first = await client.post("/api/v1/bookings/", json=booking_payload(session_type="group"))
    second = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(student_id="student-b", session_type="group"),
    )
    assert first.status_code == 201
    assert second.status_code == 201
    assert first.json()["group_id"] == second.json()["group_id"]
    assert second.json()["current_group_size"] == 2
    assert second.json()["max_group_size"] == 5


@pytest.mark.asyncio
async def test_individual_refused_on_cohort_slot(client: AsyncClient, monday_morning):
    await client.post("/api/v1/bookings/", json=booking_payload(session_type="group"))
    response = await client.post("/api/v1/bookings/", json=booking_payload(student_id="student-b"))
    assert response.status_code == 409
    assert response.json()["detail"]["reason"] == "group_occupies_slot"


@pytest.mark.asyncio
async def test_second_cohort_subject_refused(client: AsyncClient, monday_morning):
    await client.post("/api/v1/bookings/", json=booking_payload(session_type="group"))
    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(student_id="student-b", session_type="group", subject="Physics"),
    )
    assert response.status_code == 409
    assert response.json()["detail"]["reason"] == "cohort_subject_mismatch"


@pytest.mark.asyncio
async def test_overlapping_start_refused(client: AsyncClient, monday_morning):
    await client.post("/api/v1/bookings/", json=booking_payload())
    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(student_id="student-b", session_time="09:30"),
    )
    assert response.status_code == 409
    assert response.json()["detail"]["reason"] == "slot_taken"


@pytest.mark.asyncio
async def test_other_tutor_same_slot_allowed(client: AsyncClient, monday_morning):
    await client.put(
        f"/api/v1/tutors/{OTHER_TUTOR}/availability",
        json={"days": {"monday": {"available": True, "from": "09:00", "to": "12:00"}}},
    )
    await client.post("/api/v1/bookings/", json=booking_payload())
    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(tutor_id=OTHER_TUTOR, student_id="student-b"),
    )
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_past_slot_rejected(client: AsyncClient, monday_morning):
    """The clock is pinned to 2024-06-24 08:00."""
    response = await client.post("/api/v1/bookings/", json=booking_payload(session_date="2024-06-17"))
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "slot_in_past"


@pytest.mark.asyncio
async def test_unknown_parties_rejected(client: AsyncClient, monday_morning):
    response = await client.post("/api/v1/bookings/", json=booking_payload(tutor_id="nobody"))
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "unknown_tutor"

    response = await client.post("/api/v1/bookings/", json=booking_payload(tutor_id=STUDENTS[1]))
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "not_a_tutor"

    response = await client.post("/api/v1/bookings/", json=booking_payload(student_id="ghost"))
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "unknown_student"


@pytest.mark.asyncio
async def test_non_positive_price_rejected(client: AsyncClient, monday_morning):
    response = await client.post("/api/v1/bookings/", json=booking_payload(price="0"))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_get_booking_and_events(client: AsyncClient, monday_morning):
    created = (await client.post("/api/v1/bookings/", json=booking_payload())).json()

    response = await client.get(f"/api/v1/bookings/{created['id']}")
    assert response.status_code == 200
    assert response.json()["subject"] == "Mathematics"

    response = await client.get(f"/api/v1/bookings/{created['id']}/events")
    assert [e["event"] for e in response.json()] == ["created"]


@pytest.mark.asyncio
async def test_get_missing_booking(client: AsyncClient):
    response = await client.get("/api/v1/bookings/9999")
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "not_found"


@pytest.mark.asyncio
async def test_list_bookings_filters(client: AsyncClient, monday_morning):
    await client.post("/api/v1/bookings/", json=booking_payload(student_id="student-a"))
    await client.post("/api/v1/bookings/", json=booking_payload(student_id="student-b", session_time="10:00"))

    response = await client.get("/api/v1/bookings/", params={"student_id": "student-b"})
    assert [b["session_time"] for b in response.json()] == ["10:00:00"]

    response = await client.get("/api/v1/bookings/", params={"tutor_id": TUTOR, "status": "pending"})
    assert len(response.json()) == 2

    response = await client.get("/api/v1/bookings/", params={"tutor_id": TUTOR, "from_date": "2024-07-02"})
    assert response.json() == []

    response = await client.get("/api/v1/bookings/")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_cancel_frees_slot(client: AsyncClient, monday_morning):
    created = (await client.post("/api/v1/bookings/", json=booking_payload())).json()

    response = await client.post(f"/api/v1/bookings/{created['id']}/cancel", json={"reason": "tutor unavailable"})
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["cancel_reason"] == "tutor unavailable"

    response = await client.post("/api/v1/bookings/", json=booking_payload(student_id="student-b"))
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_cancel_twice_rejected(client: AsyncClient, monday_morning):
    created = (await client.post("/api/v1/bookings/", json=booking_payload())).json()
    await client.post(f"/api/v1/bookings/{created['id']}/cancel")

    response = await client.post(f"/api/v1/bookings/{created['id']}/cancel")
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "illegal_transition"


@pytest.mark.asyncio
async def test_cancelling_last_group_member_closes_cohort(client: AsyncClient, monday_morning):
    """Once the cohort is empty the slot can host an individual session again."""
    first = (await client.post("/api/v1/bookings/", json=booking_payload(session_type="group"))).json()
    second = (
        await client.post("/api/v1/bookings/", json=booking_payload(student_id="student-b", session_type="group"))
    ).json()

    response = await client.post(f"/api/v1/bookings/{first['id']}/cancel")
    assert response.status_code == 200
    remaining = (await client.get(f"/api/v1/bookings/{second['id']}")).json()
    assert remaining["current_group_size"] == 1

    await client.post(f"/api/v1/bookings/{second['id']}/cancel")
    response = await client.post("/api/v1/bookings/", json=booking_payload(student_id="student-c"))
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_complete_requires_confirmed(client: AsyncClient, monday_morning):
    created = (await client.post("/api/v1/bookings/", json=booking_payload())).json()
    response = await client.post(f"/api/v1/bookings/{created['id']}/complete")
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "not_completable"


@pytest.mark.asyncio
async def test_tutor_status_counts_paid_bookings_only(client: AsyncClient, monday_morning):
    await client.post("/api/v1/bookings/", json=booking_payload())
    response = await client.get(f"/api/v1/tutors/{TUTOR}/status")
    assert response.status_code == 200
    data = response.json()
    assert data["has_individual_booking"] is False
    assert data["has_group_booking"] is False


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "abc123"})
    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "abc123"


@pytest.mark.asyncio
async def test_complete_after_session_ends(client: AsyncClient, monday_morning, monkeypatch):
    created = (await client.post("/api/v1/bookings/", json=booking_payload())).json()
    checkout = (
        await client.post(
            "/api/v1/payments/checkout",
            json={"booking_id": created["id"], "email": "a@example.com", "first_name": "A", "last_name": "B"},
        )
    ).json()
    await client.post("/api/v1/webhook/chapa", json={"tx_ref": checkout["tx_ref"], "status": "success"})

    monkeypatch.setattr(clock, "now", lambda: datetime(2024, 7, 1, 9, 30))
    response = await client.post(f"/api/v1/bookings/{created['id']}/complete")
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "session_not_finished"

    monkeypatch.setattr(clock, "now", lambda: datetime(2024, 7, 1, 11, 0))
    response = await client.post(f"/api/v1/bookings/{created['id']}/complete")
    assert response.status_code == 200
    completed_at = response.json()["completed_at"]
    assert completed_at is not None
    assert response.json()["status"] == "confirmed"

    again = await client.post(f"/api/v1/bookings/{created['id']}/complete")
    assert again.status_code == 200
    assert again.json()["completed_at"] == completed_at

    events = (await client.get(f"/api/v1/bookings/{created['id']}/events")).json()
    assert [e["event"] for e in events] == ["created", "payment_confirmed", "completed"]


@pytest.mark.asyncio
async def test_completion_recorded_once_when_calls_overlap(
    client: AsyncClient, session_factory, monday_morning, monkeypatch
):
    """A completion landing between another call's read and write is not recorded twice."""
    created = (await client.post("/api/v1/bookings/", json=booking_payload())).json()
    checkout = (
        await client.post(
            "/api/v1/payments/checkout",
            json={"booking_id": created["id"], "email": "a@example.com", "first_name": "A", "last_name": "B"},
        )
    ).json()
    await client.post("/api/v1/webhook/chapa", json={"tx_ref": checkout["tx_ref"], "status": "success"})
    monkeypatch.setattr(clock, "now", lambda: datetime(2024, 7, 1, 11, 0))

    read_booking = booking_service.get_booking
    overtaken = []

    async def read_then_overtaken(db, booking_id):
        booking = await read_booking(db, booking_id)
        if not overtaken:
            overtaken.append(booking_id)
            async with session_factory() as other:
                await booking_service.complete_booking(other, booking_id)
        return booking

    monkeypatch.setattr(booking_service, "get_booking", read_then_overtaken)
    response = await client.post(f"/api/v1/bookings/{created['id']}/complete")
    assert response.status_code == 200
    assert response.json()["completed_at"] is not None
    assert overtaken == [created["id"]]

    events = (await client.get(f"/api/v1/bookings/{created['id']}/events")).json()
    assert [e["event"] for e in events] == ["created", "payment_confirmed", "completed"]


@pytest.mark.asyncio
async def test_unloaded_collections_raise_instead_of_querying(db_session, monday_morning, collaborators):
    booking = await booking_service.create_booking(
        db_session,
        tutor_id=TUTOR,
        student_id=STUDENTS[0],
        session_date=date(2024, 7, 1),
        session_time=time(9, 0),
        subject="Mathematics",
        session_type=SessionType.GROUP,
        price=Decimal("100.00"),
        **collaborators,
    )
    assert booking.cohort.current_size == 1
    with pytest.raises(InvalidRequestError):
        booking.events
    with pytest.raises(InvalidRequestError):
        booking.cohort.bookings


@pytest.mark.asyncio
async def test_session_past_midnight_blocks_next_day(client: AsyncClient):
    """A Sunday window running to 02:00 covers both sessions; they still overlap."""
    await client.put(
        f"/api/v1/tutors/{TUTOR}/availability",
        json={"days": {"sunday": {"available": True, "from": "22:00", "to": "02:00"}}},
    )
    response = await client.post(
        "/api/v1/bookings/", json=booking_payload(session_date="2024-06-30", session_time="23:30")
    )
    assert response.status_code == 201

    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(student_id="student-b", session_date="2024-07-01", session_time="00:00"),
    )
    assert response.status_code == 409
    assert response.json()["detail"]["reason"] == "slot_taken"
