"""
Tutor endpoints: weekly availability, schedule and booking status.
"""

from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.core import clock
from tutorbook.core.timeline import WEEKDAYS
from tutorbook.db.session import get_db
from tutorbook.schemas.availability import (
    DayAvailability,
    ScheduleResponse,
    WeeklyAvailability,
    WeeklyAvailabilityUpdate,
)
from tutorbook.schemas.booking import TutorStatusResponse
from tutorbook.services import availability_service, booking_service
from tutorbook.services.cache_service import (
    get_cached_schedule,
    invalidate_tutor_schedule,
    set_cached_schedule,
)

router = APIRouter(prefix="/tutors", tags=["Tutors"])

DEFAULT_SCHEDULE_DAYS = 14


def _to_schema(tutor_id: str, rows) -> WeeklyAvailability:
    return WeeklyAvailability(
        tutor_id=tutor_id,
        days={
            WEEKDAYS[row.weekday]: DayAvailability(
                available=row.available,
                from_time=row.from_time,
                to_time=row.to_time,
            )
            for row in rows
        },
    )


@router.get("/{tutor_id}/availability", response_model=WeeklyAvailability)
async def get_availability(tutor_id: str, db: AsyncSession = Depends(get_db)):
    rows = await availability_service.get_weekly_availability(db, tutor_id)
    return _to_schema(tutor_id, rows)


@router.put("/{tutor_id}/availability", response_model=WeeklyAvailability)
async def set_availability(
    tutor_id: str,
    payload: WeeklyAvailabilityUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Replace the tutor's weekly windows.

    A window whose `to` is earlier than its `from` runs past midnight; equal
    times mean the whole day. Existing bookings are not affected.
    """
    days = {
        name.strip().lower(): (day.available, day.from_time, day.to_time)
        for name, day in payload.days.items()
    }
    rows = await availability_service.set_weekly_availability(db, tutor_id, days)
    await invalidate_tutor_schedule(tutor_id)
    return _to_schema(tutor_id, rows)


@router.get("/{tutor_id}/schedule", response_model=ScheduleResponse)
async def get_schedule(
    tutor_id: str,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
):
    """Open windows and occupied slots for a date range (default: the next two weeks). Served from cache when possible."""
    start = from_date or clock.now().date()
    end = to_date or start + timedelta(days=DEFAULT_SCHEDULE_DAYS)

    cached = await get_cached_schedule(tutor_id, start, end)
    if cached:
        return ScheduleResponse(**cached, cached=True)

    schedule = await availability_service.get_tutor_schedule(db, tutor_id, start, end)
    await set_cached_schedule(tutor_id, start, end, schedule)
    return ScheduleResponse(**schedule)


@router.get("/{tutor_id}/status", response_model=TutorStatusResponse)
async def get_status(tutor_id: str, db: AsyncSession = Depends(get_db)):
    """Whether the tutor currently has paid individual or group sessions booked."""
    return await booking_service.tutor_status(db, tutor_id)
