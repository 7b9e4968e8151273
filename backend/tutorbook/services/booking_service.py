"""
Booking service: create, reschedule, complete and cancel tutoring sessions.

CONCURRENCY STRATEGY: Slot lock + schema guards
===============================================

Problem:
  Two students ask for the same tutor at the same time. Both run the conflict
  check, both see a free slot, both insert. The tutor is double booked.

Solution:
  1. Every check-then-write sequence runs while holding the slot lock for each
     (tutor_id, date) the session touches, acquired in sorted order and held
     until the transaction commits.
  2. The database still guards the invariant on its own:
     - partial unique index over active individual bookings per tutor slot
     - unique (tutor_id, session_date, session_time) on group cohorts
     - cohort seats taken with a conditional increment
     A writer that slips past the lock (e.g. Redis unavailable) fails with an
     IntegrityError, which is reported as RaceLossError.

Collaborators (lock, notifier, user directory) are passed in explicitly so the
API layer and tests choose the implementations.
"""

import time as time_module
from datetime import date, time
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.core import clock
from tutorbook.core.config import get_settings
from tutorbook.core.exceptions import (
    ConflictError,
    ConflictReason,
    NotFoundError,
    RaceLossError,
    ValidationError,
)
from tutorbook.core.logging import get_logger
from tutorbook.core.metrics import booking_latency, record_booking_attempt
from tutorbook.core.timeline import dates_touched, session_interval, slot_datetime, slot_end
from tutorbook.domain.lifecycle import (
    ensure_completable,
    ensure_reschedulable,
    ensure_transition,
)
from tutorbook.domain.sessions import GroupSession, IndividualSession, classify
from tutorbook.models.booking import Booking, BookingStatus, SessionType
from tutorbook.models.booking_event import LifecycleEvent
from tutorbook.models.group_cohort import GroupCohort
from tutorbook.services import cohort_service
from tutorbook.services.availability_service import is_within_availability
from tutorbook.services.conflict_checker import check_conflict
from tutorbook.services.event_log import record_event
from tutorbook.services.interfaces.notifier import Notifier
from tutorbook.services.interfaces.slot_lock import SlotLock, slot_key
from tutorbook.services.interfaces.user_directory import UserDirectory, UserProfile
from tutorbook.services.notification_service import notify_safely
from tutorbook.services.payment_service import record_payment_intent

logger = get_logger(__name__)

RACE_LOST_MESSAGE = "Another booking took this slot first. Please choose another time."


def slot_keys(tutor_id: str, session_date: date, session_time: time, duration_minutes: int) -> list[str]:
    """Lock keys for every date a session touches."""
    interval = session_interval(session_date, session_time, duration_minutes)
    return [slot_key(tutor_id, d) for d in dates_touched(interval)]


def _fmt_slot(session_date: date, session_time: time) -> str:
    return f"{session_date.isoformat()} {session_time.strftime('%H:%M')}"


async def get_booking(db: AsyncSession, booking_id: int) -> Booking:
    """Load a booking with fresh cohort data, or raise NotFoundError."""
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found", details={"booking_id": booking_id})
    return booking


async def list_bookings(
    db: AsyncSession,
    *,
    student_id: Optional[str] = None,
    tutor_id: Optional[str] = None,
    status: Optional[BookingStatus] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    disputes_only: bool = False,
) -> list[Booking]:
    """List bookings for a student or tutor; `disputes_only` lists every booking with a dispute."""
    if not (student_id or tutor_id or disputes_only):
        raise ValidationError(
            "Provide student_id, tutor_id or disputes_only",
            code="missing_filter",
        )
    query = select(Booking)
    if student_id:
        query = query.where(Booking.student_id == student_id)
    if tutor_id:
        query = query.where(Booking.tutor_id == tutor_id)
    if status:
        query = query.where(Booking.status == status)
    if from_date:
        query = query.where(Booking.session_date >= from_date)
    if to_date:
        query = query.where(Booking.session_date <= to_date)
    if disputes_only:
        query = query.where(Booking.dispute_filed.is_(True))
    query = query.order_by(Booking.session_date, Booking.session_time, Booking.id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def verify_parties(users: UserDirectory, tutor_id: str, student_id: str) -> tuple[UserProfile, UserProfile]:
    if tutor_id == student_id:
        raise ValidationError("A tutor cannot book a session with themselves", code="invalid_parties")
    tutor = await users.get_user(tutor_id)
    if tutor is None:
        raise ValidationError(f"Unknown tutor {tutor_id}", code="unknown_tutor", details={"tutor_id": tutor_id})
    if tutor.role is not None and tutor.role != "tutor":
        raise ValidationError(f"User {tutor_id} is not a tutor", code="not_a_tutor", details={"tutor_id": tutor_id})
    student = await users.get_user(student_id)
    if student is None:
        raise ValidationError(
            f"Unknown student {student_id}", code="unknown_student", details={"student_id": student_id}
        )
    return tutor, student


def ensure_future_slot(session_date: date, session_time: time) -> None:
    if slot_datetime(session_date, session_time) <= clock.now():
        raise ValidationError(
            "Cannot book a session in the past",
            code="slot_in_past",
            details={"session_date": session_date.isoformat(), "session_time": session_time.isoformat()},
        )


async def ensure_available(
    db: AsyncSession, tutor_id: str, session_date: date, session_time: time, duration_minutes: int
) -> None:
    if not await is_within_availability(db, tutor_id, session_date, session_time, duration_minutes):
        raise ConflictError(
            ConflictReason.OUTSIDE_AVAILABILITY,
            details={"session_date": session_date.isoformat(), "session_time": session_time.isoformat()},
        )


async def create_booking(
    db: AsyncSession,
    *,
    tutor_id: str,
    student_id: str,
    session_date: date,
    session_time: time,
    subject: str,
    session_type: SessionType,
    price: Decimal,
    message: Optional[str] = None,
    duration_minutes: Optional[int] = None,
    max_group_size: Optional[int] = None,
    slot_lock: SlotLock,
    users: UserDirectory,
    notifier: Notifier,
) -> Booking:
    """
    Book a tutor slot as an individual session or a seat in a group cohort.

    The booking starts pending with a pending payment; payment confirmation
    happens later through the gateway callback.

    Raises:
        ValidationError: bad parties, non-positive price, slot in the past
        ConflictError: outside availability or the slot is taken
        RaceLossError: a concurrent writer won the slot
    """
    settings = get_settings()
    duration = duration_minutes or settings.SESSION_DURATION_MINUTES
    start = time_module.perf_counter()

    if price is None or Decimal(price) <= 0:
        record_booking_attempt(str(session_type), "invalid")
        raise ValidationError("Price must be positive", code="invalid_price")
    try:
        ensure_future_slot(session_date, session_time)
        tutor, student = await verify_parties(users, tutor_id, student_id)
        await ensure_available(db, tutor_id, session_date, session_time, duration)
    except ValidationError:
        record_booking_attempt(str(session_type), "invalid")
        raise
    except ConflictError:
        record_booking_attempt(str(session_type), "conflict")
        raise

    joined_group_id: Optional[str] = None
    async with slot_lock.hold(slot_keys(tutor_id, session_date, session_time, duration)):
        result = await check_conflict(db, tutor_id, session_date, session_time, subject, session_type, duration)
        if not result.allowed:
            record_booking_attempt(str(session_type), "conflict")
            result.raise_for_conflict(
                session_date=session_date.isoformat(),
                session_time=session_time.isoformat(),
            )

        try:
            group_id = None
            if session_type == SessionType.GROUP:
                if result.existing_group_id:
                    await cohort_service.join_cohort(db, result.existing_group_id)
                    group_id = joined_group_id = result.existing_group_id
                else:
                    cohort = await cohort_service.open_cohort(
                        db,
                        tutor_id=tutor_id,
                        session_date=session_date,
                        session_time=session_time,
                        duration_minutes=duration,
                        subject=subject,
                        max_size=max_group_size or settings.DEFAULT_MAX_GROUP_SIZE,
                    )
                    group_id = cohort.id

            booking = Booking(
                tutor_id=tutor_id,
                student_id=student_id,
                session_date=session_date,
                session_time=session_time,
                duration_minutes=duration,
                subject=subject,
                message=message,
                price=price,
                session_type=session_type,
                group_id=group_id,
                status=BookingStatus.PENDING,
            )
            db.add(booking)
            await db.flush()

            record_payment_intent(db, booking, Decimal(price))
            record_event(db, booking.id, LifecycleEvent.CREATED, session_type=str(session_type), group_id=group_id)
            await db.commit()
        except ConflictError:
            await db.rollback()
            record_booking_attempt(str(session_type), "conflict")
            raise
        except IntegrityError as e:
            await db.rollback()
            record_booking_attempt(str(session_type), "race_lost")
            logger.warning(
                "booking_race_lost",
                tutor_id=tutor_id,
                session_date=session_date.isoformat(),
                session_time=session_time.isoformat(),
                session_type=str(session_type),
                error=str(e.orig),
            )
            raise RaceLossError(ConflictReason.SLOT_TAKEN, RACE_LOST_MESSAGE) from e

    booking = await get_booking(db, booking.id)
    booking_latency.observe(time_module.perf_counter() - start)
    record_booking_attempt(str(session_type), "created")
    logger.info(
        "booking_created",
        booking_id=booking.id,
        tutor_id=tutor_id,
        student_id=student_id,
        session_type=str(session_type),
        group_id=booking.group_id,
        slot=_fmt_slot(session_date, session_time),
    )

    slot_text = _fmt_slot(session_date, session_time)
    if joined_group_id:
        await notify_safely(
            notifier, student_id, f"You joined the group session on {subject} at {slot_text} with {tutor.display_name}.", "booking"
        )
        await notify_safely(notifier, tutor_id, f"{student.display_name} joined your group session at {slot_text}.", "booking")
    else:
        kind = "group" if session_type == SessionType.GROUP else "individual"
        await notify_safely(
            notifier, student_id, f"Your {kind} session on {subject} at {slot_text} is booked and awaiting payment.", "booking"
        )
        await notify_safely(notifier, tutor_id, f"New {kind} booking from {student.display_name} at {slot_text}.", "booking")
    return booking


async def _active_cohort_members(db: AsyncSession, group_id: str) -> list[Booking]:
    result = await db.execute(
        select(Booking)
        .where(Booking.group_id == group_id, Booking.status != BookingStatus.CANCELLED)
        .order_by(Booking.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


def _move(booking: Booking, new_date: date, new_time: time, note: Optional[str]) -> dict:
    moved = {
        "from_date": booking.session_date.isoformat(),
        "from_time": booking.session_time.isoformat(),
        "to_date": new_date.isoformat(),
        "to_time": new_time.isoformat(),
    }
    booking.rescheduled_from_date = booking.session_date
    booking.rescheduled_from_time = booking.session_time
    booking.session_date = new_date
    booking.session_time = new_time
    booking.reschedule_note = note
    booking.was_rescheduled = True
    return moved


async def _fresh_cohort(db: AsyncSession, group_id: str) -> GroupCohort:
    result = await db.execute(
        select(GroupCohort)
        .where(GroupCohort.id == group_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def reschedule_booking(
    db: AsyncSession,
    booking_id: int,
    new_date: date,
    new_time: time,
    note: Optional[str] = None,
    *,
    slot_lock: SlotLock,
    notifier: Notifier,
) -> Booking:
    """
    Move a booking to a new slot.

    A group booking moves its whole cohort: the cohort row and every active
    member change in one transaction, or nothing changes.

    The lock covers the old slot as well as the new one, so nobody can join
    the cohort at its old slot while it is being moved.
    """
    booking = await get_booking(db, booking_id)
    ensure_reschedulable(booking)
    if booking.session_date == new_date and booking.session_time == new_time:
        raise ValidationError("Booking is already at this slot", code="unchanged_slot")
    ensure_future_slot(new_date, new_time)
    await ensure_available(db, booking.tutor_id, new_date, new_time, booking.duration_minutes)

    old_slot = (booking.session_date, booking.session_time)
    keys = slot_keys(booking.tutor_id, *old_slot, booking.duration_minutes) + slot_keys(
        booking.tutor_id, new_date, new_time, booking.duration_minutes
    )
    details = {"session_date": new_date.isoformat(), "session_time": new_time.isoformat()}

    async with slot_lock.hold(keys):
        booking = await get_booking(db, booking_id)
        ensure_reschedulable(booking)
        if (booking.session_date, booking.session_time) != old_slot:
            raise RaceLossError(
                ConflictReason.SLOT_TAKEN,
                "Booking was moved by another request. Please try again.",
                details={"booking_id": booking_id},
            )
        session = classify(booking)

        if isinstance(session, IndividualSession):
            members = [booking]
            result = await check_conflict(
                db,
                booking.tutor_id,
                new_date,
                new_time,
                booking.subject,
                SessionType.INDIVIDUAL,
                booking.duration_minutes,
                exclude_booking_ids=[booking.id],
            )
            result.raise_for_conflict(**details)
        elif isinstance(session, GroupSession):
            cohort = await _fresh_cohort(db, session.group_id)
            members = await _active_cohort_members(db, session.group_id)
            for member in members:
                ensure_reschedulable(member)
            result = await check_conflict(
                db,
                booking.tutor_id,
                new_date,
                new_time,
                booking.subject,
                SessionType.GROUP,
                booking.duration_minutes,
                exclude_booking_ids=[m.id for m in members],
                exclude_group_id=session.group_id,
            )
            result.raise_for_conflict(**details)
            if result.existing_group_id:
                # Cohorts are never merged
                raise ConflictError(ConflictReason.GROUP_OCCUPIES_SLOT, details=details)

        try:
            if isinstance(session, GroupSession):
                cohort.session_date = new_date
                cohort.session_time = new_time
            for member in members:
                moved = _move(member, new_date, new_time, note)
                record_event(db, member.id, LifecycleEvent.RESCHEDULED, note=note, **moved)
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.warning("booking_race_lost", booking_id=booking_id, operation="reschedule", error=str(e.orig))
            raise RaceLossError(ConflictReason.SLOT_TAKEN, RACE_LOST_MESSAGE) from e

    logger.info(
        "booking_rescheduled",
        booking_id=booking_id,
        moved_booking_ids=[m.id for m in members],
        slot=_fmt_slot(new_date, new_time),
    )
    slot_text = _fmt_slot(new_date, new_time)
    for member in members:
        text = f"Your {member.subject} session has been rescheduled to {slot_text}."
        if note:
            text = f"{text} Note: {note}"
        await notify_safely(notifier, member.student_id, text, "reschedule")
    return await get_booking(db, booking_id)


async def complete_booking(db: AsyncSession, booking_id: int) -> Booking:
    """Mark a confirmed session as having taken place. Repeating the call changes nothing."""
    booking = await get_booking(db, booking_id)
    if booking.is_completed:
        return booking
    ensure_completable(booking)
    if slot_end(booking.session_date, booking.session_time, booking.duration_minutes) > clock.now():
        raise ValidationError(
            "Session has not finished yet",
            code="session_not_finished",
            details={"booking_id": booking_id},
        )

    # Only the caller that flips completed_at records the event
    result = await db.execute(
        update(Booking)
        .where(
            Booking.id == booking_id,
            Booking.status == BookingStatus.CONFIRMED,
            Booking.completed_at.is_(None),
        )
        .values(completed_at=clock.utcnow())
    )
    if result.rowcount == 0:
        await db.rollback()
        booking = await get_booking(db, booking_id)
        ensure_completable(booking)
        logger.info("booking_completion_replayed", booking_id=booking_id)
        return booking

    record_event(db, booking.id, LifecycleEvent.COMPLETED)
    await db.commit()
    logger.info("booking_completed", booking_id=booking_id, tutor_id=booking.tutor_id)
    return await get_booking(db, booking_id)


async def cancel_booking(
    db: AsyncSession,
    booking_id: int,
    reason: Optional[str] = None,
    *,
    slot_lock: SlotLock,
    notifier: Notifier,
) -> Booking:
    """Cancel a pending or confirmed booking and give its cohort seat back."""
    booking = await get_booking(db, booking_id)
    ensure_transition(booking, BookingStatus.CANCELLED)

    async with slot_lock.hold(
        slot_keys(booking.tutor_id, booking.session_date, booking.session_time, booking.duration_minutes)
    ):
        group_id = booking.group_id
        booking.status = BookingStatus.CANCELLED
        booking.cancelled_at = clock.utcnow()
        booking.cancel_reason = reason
        if booking.session_type == SessionType.GROUP and group_id:
            await cohort_service.release_seat(db, group_id)
        record_event(db, booking.id, LifecycleEvent.CANCELLED, reason=reason)
        await db.commit()

    logger.info("booking_cancelled", booking_id=booking_id, reason=reason, group_id=group_id)
    text = f"Your session on {_fmt_slot(booking.session_date, booking.session_time)} has been cancelled."
    if reason:
        text = f"{text} Reason: {reason}"
    await notify_safely(notifier, booking.student_id, text, "cancellation")
    return await get_booking(db, booking_id)


async def tutor_status(db: AsyncSession, tutor_id: str) -> dict:
    """Active paid bookings of a tutor, split by session type."""
    result = await db.execute(
        select(Booking)
        .where(
            Booking.tutor_id == tutor_id,
            Booking.status != BookingStatus.CANCELLED,
            Booking.is_paid.is_(True),
        )
        .order_by(Booking.session_date, Booking.session_time)
    )
    bookings = list(result.scalars().all())
    individual = [b for b in bookings if b.session_type == SessionType.INDIVIDUAL]
    group = [b for b in bookings if b.session_type == SessionType.GROUP]
    return {
        "tutor_id": tutor_id,
        "has_individual_booking": bool(individual),
        "has_group_booking": bool(group),
        "individual_bookings": individual,
        "group_bookings": group,
    }
