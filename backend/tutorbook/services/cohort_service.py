"""
Group cohort seat accounting.

CONCURRENCY STRATEGY: Conditional UPDATE
========================================

Problem:
  Two students join the last free seat of a cohort at the same moment.
  Both read current_size=4 of 5, both write 5. One seat is sold twice.

Solution:
  The seat counter is only changed with a single conditional statement:

    UPDATE group_cohorts SET current_size = current_size + 1
    WHERE id = :id AND current_size < max_size

  If rows_affected == 0 the cohort filled up underneath us and the join is
  rejected as GROUP_FULL. The CHECK constraint current_size <= max_size is the
  last line of defence.

Empty cohorts are deleted so the slot can host a new cohort; the caller holds
the slot lock while releasing a seat.
"""

from datetime import date, time

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.core.exceptions import ConflictError, ConflictReason
from tutorbook.core.logging import get_logger
from tutorbook.models.booking import Booking
from tutorbook.models.group_cohort import GroupCohort, new_group_id

logger = get_logger(__name__)


async def join_cohort(db: AsyncSession, group_id: str) -> None:
    """Take one seat in an existing cohort or raise GROUP_FULL."""
    result = await db.execute(
        update(GroupCohort)
        .where(GroupCohort.id == group_id, GroupCohort.current_size < GroupCohort.max_size)
        .values(current_size=GroupCohort.current_size + 1)
    )
    if result.rowcount == 0:
        logger.info("cohort_full", group_id=group_id)
        raise ConflictError(ConflictReason.GROUP_FULL, details={"group_id": group_id})


async def open_cohort(
    db: AsyncSession,
    *,
    tutor_id: str,
    session_date: date,
    session_time: time,
    duration_minutes: int,
    subject: str,
    max_size: int,
) -> GroupCohort:
    """Create a cohort holding its first seat. A concurrent opener loses on uq_cohort_tutor_slot."""
    cohort = GroupCohort(
        id=new_group_id(),
        tutor_id=tutor_id,
        session_date=session_date,
        session_time=session_time,
        duration_minutes=duration_minutes,
        subject=subject,
        max_size=max_size,
        current_size=1,
    )
    db.add(cohort)
    await db.flush()
    logger.info("cohort_opened", group_id=cohort.id, tutor_id=tutor_id, max_size=max_size)
    return cohort


async def release_seat(db: AsyncSession, group_id: str) -> None:
    """Give one seat back; the cohort row is removed once nobody is left in it."""
    await db.execute(
        update(GroupCohort)
        .where(GroupCohort.id == group_id, GroupCohort.current_size > 0)
        .values(current_size=GroupCohort.current_size - 1)
    )
    remaining = await db.scalar(select(GroupCohort.current_size).where(GroupCohort.id == group_id))
    if remaining == 0:
        await db.execute(update(Booking).where(Booking.group_id == group_id).values(group_id=None))
        await db.execute(delete(GroupCohort).where(GroupCohort.id == group_id))
        logger.info("cohort_closed", group_id=group_id)
