"""
Conflict checker: decides whether a tutor slot can take a new booking.

All checks use the session's own interval on the absolute minute timeline,
so "overlap" means the [start, start + duration) ranges intersect, including
sessions that run past midnight into the next date.

Slot policy:
- individual vs individual: no overlap allowed
- individual vs group: mutually exclusive, in either direction
- group vs group: a request at exactly a cohort's date and time joins that
  cohort while it has room; any other overlap is a clash
- one slot holds one cohort, whatever the subject
"""

from dataclasses import dataclass
from datetime import date, time, timedelta
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.core.config import get_settings
from tutorbook.core.exceptions import ConflictError, ConflictReason
from tutorbook.core.logging import get_logger
from tutorbook.core.metrics import record_conflict
from tutorbook.core.timeline import Interval, dates_touched, session_interval
from tutorbook.models.booking import Booking, BookingStatus, SessionType
from tutorbook.models.group_cohort import GroupCohort

logger = get_logger(__name__)


@dataclass(frozen=True)
class ConflictResult:
    allowed: bool
    reason: Optional[ConflictReason] = None
    existing_group_id: Optional[str] = None
    conflicting_booking_id: Optional[int] = None

    def raise_for_conflict(self, **details) -> None:
        if not self.allowed:
            if self.conflicting_booking_id is not None:
                details.setdefault("conflicting_booking_id", self.conflicting_booking_id)
            raise ConflictError(self.reason, details=details)


@dataclass(frozen=True)
class PlannedSession:
    """A session that is not stored yet, e.g. an earlier occurrence of the same recurring batch."""

    session_date: date
    session_time: time
    duration_minutes: int

    @property
    def interval(self) -> Interval:
        return session_interval(self.session_date, self.session_time, self.duration_minutes)


def _lookup_range(interval: Interval) -> tuple[date, date]:
    touched = dates_touched(interval)
    # A session on the previous date may run past midnight into ours
    return touched[0] - timedelta(days=1), touched[-1]


async def load_tutor_calendar(
    db: AsyncSession,
    tutor_id: str,
    first_date: date,
    last_date: date,
) -> tuple[list[Booking], list[GroupCohort]]:
    """Active individual bookings and group cohorts of a tutor between two dates, inclusive."""
    bookings = await db.execute(
        select(Booking).where(
            Booking.tutor_id == tutor_id,
            Booking.session_type == SessionType.INDIVIDUAL,
            Booking.status != BookingStatus.CANCELLED,
            Booking.session_date >= first_date,
            Booking.session_date <= last_date,
        )
    )
    cohorts = await db.execute(
        select(GroupCohort).where(
            GroupCohort.tutor_id == tutor_id,
            GroupCohort.current_size > 0,
            GroupCohort.session_date >= first_date,
            GroupCohort.session_date <= last_date,
        )
    )
    return list(bookings.scalars().all()), list(cohorts.scalars().all())


def evaluate(
    requested: Interval,
    session_date: date,
    session_time: time,
    subject: str,
    session_type: SessionType,
    bookings: Iterable[Booking],
    cohorts: Iterable[GroupCohort],
    planned: Iterable[PlannedSession] = (),
) -> ConflictResult:
    """Pure conflict decision over an already-loaded calendar."""
    for booking in bookings:
        if requested.overlaps(session_interval(booking.session_date, booking.session_time, booking.duration_minutes)):
            reason = (
                ConflictReason.SLOT_TAKEN
                if session_type == SessionType.INDIVIDUAL
                else ConflictReason.INDIVIDUAL_OCCUPIES_SLOT
            )
            return ConflictResult(False, reason, conflicting_booking_id=booking.id)

    for other in planned:
        if requested.overlaps(other.interval):
            return ConflictResult(False, ConflictReason.SLOT_TAKEN)

    for cohort in cohorts:
        if not requested.overlaps(session_interval(cohort.session_date, cohort.session_time, cohort.duration_minutes)):
            continue
        if session_type == SessionType.INDIVIDUAL:
            return ConflictResult(False, ConflictReason.GROUP_OCCUPIES_SLOT)
        if cohort.session_date != session_date or cohort.session_time != session_time:
            return ConflictResult(False, ConflictReason.GROUP_OCCUPIES_SLOT)
        if cohort.subject != subject:
            return ConflictResult(False, ConflictReason.COHORT_SUBJECT_MISMATCH, existing_group_id=cohort.id)
        if cohort.current_size >= cohort.max_size:
            return ConflictResult(False, ConflictReason.GROUP_FULL, existing_group_id=cohort.id)
        return ConflictResult(True, existing_group_id=cohort.id)

    return ConflictResult(True)


async def check_conflict(
    db: AsyncSession,
    tutor_id: str,
    session_date: date,
    session_time: time,
    subject: str,
    session_type: SessionType,
    duration_minutes: Optional[int] = None,
    exclude_booking_ids: Iterable[int] = (),
    exclude_group_id: Optional[str] = None,
    planned: Iterable[PlannedSession] = (),
) -> ConflictResult:
    """
    Check whether a new booking is legal against the tutor's existing bookings.

    Args:
        exclude_booking_ids: bookings whose current occupancy is ignored (reschedule)
        exclude_group_id: cohort whose current occupancy is ignored (cohort reschedule)
        planned: sessions of the same batch that are not persisted yet

    Returns:
        ConflictResult; `existing_group_id` is set when a group request can join a cohort
    """
    duration = duration_minutes or get_settings().SESSION_DURATION_MINUTES
    requested = session_interval(session_date, session_time, duration)
    first_date, last_date = _lookup_range(requested)

    bookings, cohorts = await load_tutor_calendar(db, tutor_id, first_date, last_date)
    excluded = set(exclude_booking_ids)
    bookings = [b for b in bookings if b.id not in excluded]
    cohorts = [c for c in cohorts if c.id != exclude_group_id]

    result = evaluate(requested, session_date, session_time, subject, session_type, bookings, cohorts, planned)
    if not result.allowed:
        record_conflict(str(result.reason))
        logger.info(
            "booking_conflict",
            tutor_id=tutor_id,
            session_date=session_date.isoformat(),
            session_time=session_time.isoformat(timespec="minutes"),
            session_type=str(session_type),
            reason=str(result.reason),
            conflicting_booking_id=result.conflicting_booking_id,
        )
    return result
