"""
Tests for filing and resolving disputes, including the two-phase refund.
"""

import asyncio
from decimal import Decimal

import pytest
from httpx import AsyncClient

from conftest import booking_payload
from tutorbook.core.exceptions import GatewayTransientError, PayoutUnavailableError

BANK = {"bank_account_name": "Abebe Kebede", "bank_account_number": "1000123456", "bank_code": "CBE"}
PAYER = {"email": "abebe@example.com", "first_name": "Abebe", "last_name": "Kebede"}


async def paid_booking(client: AsyncClient, **overrides) -> dict:
    booking = (await client.post("/api/v1/bookings/", json=booking_payload(**overrides))).json()
    checkout = (await client.post("/api/v1/payments/checkout", json={"booking_id": booking["id"], **PAYER})).json()
    await client.post("/api/v1/webhook/chapa", json={"tx_ref": checkout["tx_ref"], "status": "success"})
    return booking


async def file(client: AsyncClient, booking_id: int, **extra):
    return await client.post(
        "/api/v1/disputes/",
        json={"booking_id": booking_id, "reason": "Tutor did not show up", **BANK, **extra},
    )


@pytest.mark.asyncio
async def test_file_dispute(client: AsyncClient, monday_morning, notifier):
    booking = await paid_booking(client)
    response = await file(client, booking["id"])
    assert response.status_code == 201
    data = response.json()
    assert data["dispute_filed"] is True
    assert data["dispute_resolved"] is False
    assert data["dispute_reason"] == "Tutor did not show up"

    assert any("dispute" in m for m in notifier.messages_for(booking["tutor_id"]))

    listed = (await client.get("/api/v1/disputes/")).json()
    assert [b["id"] for b in listed] == [booking["id"]]


@pytest.mark.asyncio
async def test_dispute_filed_once(client: AsyncClient, monday_morning):
    booking = await paid_booking(client)
    await file(client, booking["id"])
    response = await file(client, booking["id"])
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "dispute_already_filed"


@pytest.mark.asyncio
async def test_dispute_needs_reason(client: AsyncClient, monday_morning):
    booking = await paid_booking(client)
    response = await client.post("/api/v1/disputes/", json={"booking_id": booking["id"], "reason": "   "})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "missing_reason"


@pytest.mark.asyncio
async def test_cancelled_booking_cannot_be_disputed(client: AsyncClient, monday_morning):
    booking = (await client.post("/api/v1/bookings/", json=booking_payload())).json()
    await client.post(f"/api/v1/bookings/{booking['id']}/cancel")
    response = await file(client, booking["id"])
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "booking_cancelled"


@pytest.mark.asyncio
async def test_refund_resolution(client: AsyncClient, monday_morning, gateway):
    booking = await paid_booking(client)
    await file(client, booking["id"])

    response = await client.patch(f"/api/v1/disputes/{booking['id']}", json={"outcome": "refunded"})
    assert response.status_code == 200
    data = response.json()
    assert data["dispute_resolved"] is True
    assert data["dispute_outcome"] == "refunded"
    assert data["status"] == "cancelled"
    assert data["is_tutor_paid"] is False

    assert len(gateway.refunds) == 1
    tx_ref, bank, amount, reference = gateway.refunds[0]
    assert bank.account_number == "1000123456"
    assert amount == Decimal("100.00")
    assert reference.startswith(f"refund-{booking['id']}-")

    # The refunded slot is free again
    response = await client.post("/api/v1/bookings/", json=booking_payload(student_id="student-b"))
    assert response.status_code == 201

    events = (await client.get(f"/api/v1/bookings/{booking['id']}/events")).json()
    assert [e["event"] for e in events][-3:] == ["dispute_filed", "cancelled", "dispute_resolved"]


@pytest.mark.asyncio
async def test_resolution_fires_once(client: AsyncClient, monday_morning, gateway):
    """Two administrators resolve at the same time; the student is refunded once."""
    booking = await paid_booking(client)
    await file(client, booking["id"])

    responses = await asyncio.gather(
        client.patch(f"/api/v1/disputes/{booking['id']}", json={"outcome": "refunded"}),
        client.patch(f"/api/v1/disputes/{booking['id']}", json={"outcome": "refunded"}),
    )
    assert sorted(r.status_code for r in responses) == [200, 400]
    rejected = next(r for r in responses if r.status_code == 400)
    assert rejected.json()["detail"]["code"] == "no_open_dispute"
    assert len(gateway.refunds) == 1


@pytest.mark.asyncio
async def test_payout_unavailable_keeps_dispute_open(client: AsyncClient, monday_morning, gateway):
    booking = await paid_booking(client)
    await file(client, booking["id"])
    gateway.refund_error = PayoutUnavailableError("Automated refund is not available for this gateway account.")

    response = await client.patch(f"/api/v1/disputes/{booking['id']}", json={"outcome": "refunded"})
    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "payout_unavailable"

    refreshed = (await client.get(f"/api/v1/bookings/{booking['id']}")).json()
    assert refreshed["dispute_resolved"] is False
    assert refreshed["status"] == "confirmed"

    # Once the gateway recovers the same dispute can still be refunded
    gateway.refund_error = None
    response = await client.patch(f"/api/v1/disputes/{booking['id']}", json={"outcome": "refunded"})
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_transient_gateway_error_keeps_dispute_open(client: AsyncClient, monday_morning, gateway):
    booking = await paid_booking(client)
    await file(client, booking["id"])
    gateway.refund_error = GatewayTransientError("Payment gateway unreachable")

    response = await client.patch(f"/api/v1/disputes/{booking['id']}", json={"outcome": "refunded"})
    assert response.status_code == 503
    listed = (await client.get("/api/v1/disputes/")).json()
    assert [b["id"] for b in listed] == [booking["id"]]


@pytest.mark.asyncio
async def test_rejected_resolution_pays_tutor(client: AsyncClient, monday_morning, gateway):
    booking = await paid_booking(client)
    await file(client, booking["id"])

    response = await client.patch(f"/api/v1/disputes/{booking['id']}", json={"outcome": "rejected"})
    assert response.status_code == 200
    data = response.json()
    assert data["dispute_outcome"] == "rejected"
    assert data["status"] == "confirmed"
    assert data["is_tutor_paid"] is True
    assert gateway.refunds == []

    assert (await client.get("/api/v1/disputes/")).json() == []
    resolved = (await client.get("/api/v1/disputes/", params={"include_resolved": "true"})).json()
    assert [b["id"] for b in resolved] == [booking["id"]]


@pytest.mark.asyncio
async def test_refund_requires_completed_payment(client: AsyncClient, monday_morning):
    booking = (await client.post("/api/v1/bookings/", json=booking_payload())).json()
    await file(client, booking["id"])

    response = await client.patch(f"/api/v1/disputes/{booking['id']}", json={"outcome": "refunded"})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "no_completed_payment"


@pytest.mark.asyncio
async def test_refund_requires_bank_details(client: AsyncClient, monday_morning):
    booking = await paid_booking(client)
    await client.post("/api/v1/disputes/", json={"booking_id": booking["id"], "reason": "Session was cut short"})

    response = await client.patch(f"/api/v1/disputes/{booking['id']}", json={"outcome": "refunded"})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "missing_bank_details"


@pytest.mark.asyncio
async def test_resolve_without_dispute(client: AsyncClient, monday_morning):
    booking = await paid_booking(client)
    response = await client.patch(f"/api/v1/disputes/{booking['id']}", json={"outcome": "rejected"})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "no_open_dispute"
