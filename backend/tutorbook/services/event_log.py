"""
Lifecycle event recording.
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.core.metrics import record_lifecycle_event
from tutorbook.models.booking_event import BookingEvent, LifecycleEvent


def record_event(db: AsyncSession, booking_id: int, event: LifecycleEvent, **details: Any) -> BookingEvent:
    """Stage an event in the caller's transaction; it is written on the caller's commit."""
    entry = BookingEvent(booking_id=booking_id, event=str(event), details=details or None)
    db.add(entry)
    record_lifecycle_event(str(event))
    return entry


async def list_events(db: AsyncSession, booking_id: int) -> list[BookingEvent]:
    result = await db.execute(
        select(BookingEvent).where(BookingEvent.booking_id == booking_id).order_by(BookingEvent.id)
    )
    return list(result.scalars().all())
