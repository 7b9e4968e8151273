"""
Booking endpoints: create, list, reschedule, complete, cancel and recurring series.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.db.session import get_db
from tutorbook.models.booking import BookingStatus
from tutorbook.schemas.booking import (
    BookingCreate,
    BookingEventResponse,
    BookingResponse,
    CancelRequest,
    RecurrenceCancelResponse,
    RecurringCreate,
    RecurringResponse,
    RescheduleRequest,
)
from tutorbook.services import booking_service, recurring_service
from tutorbook.services.cache_service import invalidate_tutor_schedule
from tutorbook.services.event_log import list_events
from tutorbook.services.interfaces import Notifier, SlotLock, UserDirectory
from tutorbook.services.strategy_factory import get_notifier, get_slot_lock, get_user_directory

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    db: AsyncSession = Depends(get_db),
    slot_lock: SlotLock = Depends(get_slot_lock),
    users: UserDirectory = Depends(get_user_directory),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Book a tutor slot.

    Individual sessions own their slot. Group sessions join the cohort already
    running at exactly this slot while it has seats, or open a new one.
    Returns 409 with a `reason` when the slot cannot be taken.
    """
    booking = await booking_service.create_booking(
        db,
        **payload.model_dump(),
        slot_lock=slot_lock,
        users=users,
        notifier=notifier,
    )
    await invalidate_tutor_schedule(booking.tutor_id)
    return booking


@router.get("/", response_model=list[BookingResponse])
async def list_bookings(
    student_id: Optional[str] = None,
    tutor_id: Optional[str] = None,
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    disputes_only: bool = False,
    db: AsyncSession = Depends(get_db),
):
    """List bookings of a student or a tutor, optionally narrowed by status and date range."""
    return await booking_service.list_bookings(
        db,
        student_id=student_id,
        tutor_id=tutor_id,
        status=status_filter,
        from_date=from_date,
        to_date=to_date,
        disputes_only=disputes_only,
    )


@router.post("/recurring", response_model=RecurringResponse, status_code=status.HTTP_201_CREATED)
async def create_recurring(
    payload: RecurringCreate,
    db: AsyncSession = Depends(get_db),
    slot_lock: SlotLock = Depends(get_slot_lock),
    users: UserDirectory = Depends(get_user_directory),
    notifier: Notifier = Depends(get_notifier),
):
    """Book the same weekly slot for several months. Either every session is booked or none is."""
    batch = await recurring_service.create_recurring_bookings(
        db,
        **payload.model_dump(),
        slot_lock=slot_lock,
        users=users,
        notifier=notifier,
    )
    await invalidate_tutor_schedule(payload.tutor_id)
    return RecurringResponse(
        recurrence_id=batch.recurrence_id,
        tx_ref=batch.payment.tx_ref,
        total_price=batch.total_price,
        first_session_date=batch.first_session_date,
        sessions=[BookingResponse.model_validate(b) for b in batch.bookings],
    )


@router.post("/recurring/{recurrence_id}/cancel", response_model=RecurrenceCancelResponse)
async def cancel_recurring(
    recurrence_id: str,
    payload: Optional[CancelRequest] = None,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    cancelled = await recurring_service.cancel_recurrence(
        db, recurrence_id, payload.reason if payload else None, notifier=notifier
    )
    if cancelled:
        await invalidate_tutor_schedule(cancelled[0].tutor_id)
    return RecurrenceCancelResponse(
        recurrence_id=recurrence_id,
        cancelled_booking_ids=[b.id for b in cancelled],
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(booking_id: int, db: AsyncSession = Depends(get_db)):
    return await booking_service.get_booking(db, booking_id)


@router.get("/{booking_id}/events", response_model=list[BookingEventResponse])
async def get_booking_events(booking_id: int, db: AsyncSession = Depends(get_db)):
    """Lifecycle history of a booking, oldest first."""
    await booking_service.get_booking(db, booking_id)
    return await list_events(db, booking_id)


@router.patch("/{booking_id}/reschedule", response_model=BookingResponse)
async def reschedule_booking(
    booking_id: int,
    payload: RescheduleRequest,
    db: AsyncSession = Depends(get_db),
    slot_lock: SlotLock = Depends(get_slot_lock),
    notifier: Notifier = Depends(get_notifier),
):
    """Move a booking to another slot. Group bookings move their whole cohort."""
    booking = await booking_service.reschedule_booking(
        db,
        booking_id,
        payload.new_date,
        payload.new_time,
        payload.note,
        slot_lock=slot_lock,
        notifier=notifier,
    )
    await invalidate_tutor_schedule(booking.tutor_id)
    return booking


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(booking_id: int, db: AsyncSession = Depends(get_db)):
    """Record that a confirmed session took place. Safe to call more than once."""
    return await booking_service.complete_booking(db, booking_id)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int,
    payload: Optional[CancelRequest] = None,
    db: AsyncSession = Depends(get_db),
    slot_lock: SlotLock = Depends(get_slot_lock),
    notifier: Notifier = Depends(get_notifier),
):
    """Cancel (reject) a pending or confirmed booking and release its slot."""
    booking = await booking_service.cancel_booking(
        db,
        booking_id,
        payload.reason if payload else None,
        slot_lock=slot_lock,
        notifier=notifier,
    )
    await invalidate_tutor_schedule(booking.tutor_id)
    return booking
