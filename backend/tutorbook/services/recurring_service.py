"""
Recurring sessions: one weekly slot booked for a number of months.

The batch is all-or-nothing. Every occurrence is checked against the tutor's
availability, the tutor's calendar and the batch's own earlier occurrences
before anything is written; the first failing occurrence rejects the whole
request with its date in the error details.
"""

import uuid
from dataclasses import dataclass
from datetime import date, time, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.core import clock
from tutorbook.core.config import get_settings
from tutorbook.core.exceptions import ConflictError, ConflictReason, NotFoundError, RaceLossError, ValidationError
from tutorbook.core.logging import get_logger
from tutorbook.core.metrics import recurring_requests
from tutorbook.core.timeline import add_months, weekday_index
from tutorbook.models.booking import Booking, BookingStatus, SessionType
from tutorbook.models.booking_event import LifecycleEvent
from tutorbook.models.payment import Payment
from tutorbook.services.availability_service import covers_slot, get_weekly_availability
from tutorbook.services.booking_service import (
    RACE_LOST_MESSAGE,
    ensure_future_slot,
    slot_keys,
    verify_parties,
)
from tutorbook.services.conflict_checker import PlannedSession, check_conflict
from tutorbook.services.event_log import record_event
from tutorbook.services.interfaces.notifier import Notifier
from tutorbook.services.interfaces.slot_lock import SlotLock
from tutorbook.services.interfaces.user_directory import UserDirectory
from tutorbook.services.notification_service import notify_safely
from tutorbook.services.payment_service import new_tx_ref, record_payment_intent

logger = get_logger(__name__)


@dataclass
class RecurringBatch:
    recurrence_id: str
    bookings: list[Booking]
    payment: Payment
    total_price: Decimal

    @property
    def first_session_date(self) -> date:
        return self.bookings[0].session_date


def expand_occurrences(start_date: date, weekday: str, duration_months: int) -> list[date]:
    """
    Dates of a weekly series: the first `weekday` on or after `start_date`,
    then every 7 days, strictly before `start_date` + `duration_months`.
    """
    target = weekday_index(weekday)
    end = add_months(start_date, duration_months)
    current = start_date + timedelta(days=(target - start_date.weekday()) % 7)
    occurrences = []
    while current < end:
        occurrences.append(current)
        current += timedelta(weeks=1)
    return occurrences


def _reject(occurrence: date, reason: ConflictReason, **details) -> ConflictError:
    recurring_requests.labels(result="rejected").inc()
    logger.info("recurring_rejected", conflict_date=occurrence.isoformat(), reason=str(reason))
    return ConflictError(
        reason,
        f"Occurrence on {occurrence.isoformat()} cannot be booked",
        details={"conflict_date": occurrence.isoformat(), **details},
    )


async def create_recurring_bookings(
    db: AsyncSession,
    *,
    tutor_id: str,
    student_id: str,
    start_date: date,
    weekday: str,
    session_time: time,
    duration_months: int,
    subject: str,
    price: Decimal,
    message: Optional[str] = None,
    duration_minutes: Optional[int] = None,
    slot_lock: SlotLock,
    users: UserDirectory,
    notifier: Notifier,
) -> RecurringBatch:
    """Book a weekly individual session for `duration_months` months, all-or-nothing."""
    settings = get_settings()
    duration = duration_minutes or settings.SESSION_DURATION_MINUTES

    if not 1 <= duration_months <= settings.MAX_RECURRING_MONTHS:
        raise ValidationError(
            f"duration_months must be between 1 and {settings.MAX_RECURRING_MONTHS}",
            code="invalid_duration",
        )
    if price is None or Decimal(price) <= 0:
        raise ValidationError("Price must be positive", code="invalid_price")
    try:
        occurrences = expand_occurrences(start_date, weekday, duration_months)
    except ValueError as e:
        raise ValidationError(str(e), code="invalid_weekday") from e
    if not occurrences:
        raise ValidationError("No sessions fall inside the requested period", code="empty_series")

    ensure_future_slot(occurrences[0], session_time)
    tutor, _student = await verify_parties(users, tutor_id, student_id)

    windows = await get_weekly_availability(db, tutor_id)
    for occurrence in occurrences:
        if not covers_slot(windows, occurrence, session_time, duration):
            raise _reject(occurrence, ConflictReason.OUTSIDE_AVAILABILITY)

    keys = [k for d in occurrences for k in slot_keys(tutor_id, d, session_time, duration)]
    recurrence_id = str(uuid.uuid4())
    async with slot_lock.hold(keys):
        planned: list[PlannedSession] = []
        for occurrence in occurrences:
            result = await check_conflict(
                db,
                tutor_id,
                occurrence,
                session_time,
                subject,
                SessionType.INDIVIDUAL,
                duration,
                planned=planned,
            )
            if not result.allowed:
                raise _reject(occurrence, result.reason, conflicting_booking_id=result.conflicting_booking_id)
            planned.append(PlannedSession(occurrence, session_time, duration))

        try:
            bookings = []
            for occurrence in occurrences:
                booking = Booking(
                    tutor_id=tutor_id,
                    student_id=student_id,
                    session_date=occurrence,
                    session_time=session_time,
                    duration_minutes=duration,
                    subject=subject,
                    message=message,
                    price=price,
                    session_type=SessionType.INDIVIDUAL,
                    recurrence_id=recurrence_id,
                    status=BookingStatus.PENDING,
                )
                db.add(booking)
                bookings.append(booking)
            await db.flush()

            total_price = Decimal(price) * len(bookings)
            payment = record_payment_intent(
                db, bookings[0], total_price, new_tx_ref("recurring"), recurrence_id=recurrence_id
            )
            for booking in bookings:
                record_event(db, booking.id, LifecycleEvent.CREATED, recurrence_id=recurrence_id)
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            recurring_requests.labels(result="race_lost").inc()
            logger.warning("booking_race_lost", tutor_id=tutor_id, operation="recurring", error=str(e.orig))
            raise RaceLossError(ConflictReason.SLOT_TAKEN, RACE_LOST_MESSAGE) from e

    bookings = await _series(db, recurrence_id)
    recurring_requests.labels(result="created").inc()
    logger.info(
        "recurring_created",
        recurrence_id=recurrence_id,
        tutor_id=tutor_id,
        student_id=student_id,
        sessions=len(bookings),
        total_price=str(total_price),
    )
    await notify_safely(
        notifier,
        student_id,
        f"{len(bookings)} weekly {subject} sessions with {tutor.display_name} starting "
        f"{occurrences[0].isoformat()} are booked and awaiting payment.",
        "booking",
    )
    await notify_safely(notifier, tutor_id, f"New recurring booking: {len(bookings)} weekly sessions on {weekday}.", "booking")
    return RecurringBatch(recurrence_id, bookings, payment, total_price)


async def _series(db: AsyncSession, recurrence_id: str) -> list[Booking]:
    result = await db.execute(
        select(Booking)
        .where(Booking.recurrence_id == recurrence_id)
        .order_by(Booking.session_date)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def cancel_recurrence(
    db: AsyncSession,
    recurrence_id: str,
    reason: Optional[str] = None,
    *,
    notifier: Notifier,
) -> list[Booking]:
    """Cancel every still-active session of a series. Past and cancelled sessions are left alone."""
    members = await _series(db, recurrence_id)
    if not members:
        raise NotFoundError(f"Recurrence {recurrence_id} not found", details={"recurrence_id": recurrence_id})

    cancelled = []
    for booking in members:
        if booking.status == BookingStatus.CANCELLED or booking.is_completed:
            continue
        booking.status = BookingStatus.CANCELLED
        booking.cancelled_at = clock.utcnow()
        booking.cancel_reason = reason
        record_event(db, booking.id, LifecycleEvent.CANCELLED, reason=reason, recurrence_id=recurrence_id)
        cancelled.append(booking)
    await db.commit()

    logger.info("recurrence_cancelled", recurrence_id=recurrence_id, cancelled=len(cancelled))
    if cancelled:
        await notify_safely(
            notifier,
            members[0].student_id,
            f"{len(cancelled)} upcoming sessions of your weekly {members[0].subject} series were cancelled.",
            "cancellation",
        )
    return cancelled
