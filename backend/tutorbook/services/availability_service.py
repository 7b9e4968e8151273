"""
Availability service: the weekly windows that bound what can ever be booked.
"""

from datetime import date, time
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.core.exceptions import ValidationError
from tutorbook.core.logging import get_logger
from tutorbook.core.timeline import WEEKDAYS, week_interval, window_covers, window_interval
from tutorbook.models.availability import TutorAvailability
from tutorbook.services.conflict_checker import load_tutor_calendar

logger = get_logger(__name__)


async def get_weekly_availability(db: AsyncSession, tutor_id: str) -> list[TutorAvailability]:
    result = await db.execute(
        select(TutorAvailability)
        .where(TutorAvailability.tutor_id == tutor_id)
        .order_by(TutorAvailability.weekday)
    )
    return list(result.scalars().all())


async def set_weekly_availability(
    db: AsyncSession,
    tutor_id: str,
    days: dict[str, tuple[bool, Optional[time], Optional[time]]],
) -> list[TutorAvailability]:
    """
    Replace a tutor's weekly windows.

    `days` maps weekday names to (available, from, to). Days not listed are
    stored as unavailable.
    """
    unknown = set(days) - set(WEEKDAYS)
    if unknown:
        raise ValidationError(f"Unknown weekday(s): {', '.join(sorted(unknown))}", code="invalid_weekday")

    rows = []
    for weekday, name in enumerate(WEEKDAYS):
        available, from_time, to_time = days.get(name, (False, None, None))
        if available and (from_time is None or to_time is None):
            raise ValidationError(
                f"{name.capitalize()} is marked available but has no from/to time",
                code="invalid_availability",
                details={"weekday": name},
            )
        rows.append(
            TutorAvailability(
                tutor_id=tutor_id,
                weekday=weekday,
                available=available,
                from_time=from_time,
                to_time=to_time,
            )
        )

    await db.execute(delete(TutorAvailability).where(TutorAvailability.tutor_id == tutor_id))
    db.add_all(rows)
    await db.commit()

    logger.info(
        "availability_updated",
        tutor_id=tutor_id,
        open_days=[WEEKDAYS[r.weekday] for r in rows if r.available],
    )
    return rows


def covers_slot(windows: list[TutorAvailability], session_date: date, session_time: time, duration_minutes: int) -> bool:
    """True when one open window holds the whole session, including windows that wrap past midnight."""
    session = week_interval(session_date, session_time, duration_minutes)
    for window in windows:
        if not window.available or window.from_time is None or window.to_time is None:
            continue
        if window_covers(window_interval(window.weekday, window.from_time, window.to_time), session):
            return True
    return False


async def is_within_availability(
    db: AsyncSession,
    tutor_id: str,
    session_date: date,
    session_time: time,
    duration_minutes: int,
) -> bool:
    windows = await get_weekly_availability(db, tutor_id)
    return covers_slot(windows, session_date, session_time, duration_minutes)


async def get_tutor_schedule(db: AsyncSession, tutor_id: str, from_date: date, to_date: date) -> dict:
    """Weekly windows plus every occupied slot between two dates, as plain JSON-ready values."""
    if to_date < from_date:
        raise ValidationError("to_date must not be before from_date", code="invalid_range")

    windows = await get_weekly_availability(db, tutor_id)
    bookings, cohorts = await load_tutor_calendar(db, tutor_id, from_date, to_date)

    occupied = [
        {
            "session_date": b.session_date.isoformat(),
            "session_time": b.session_time.strftime("%H:%M"),
            "duration_minutes": b.duration_minutes,
            "session_type": "individual",
            "subject": b.subject,
            "group_id": None,
            "current_size": 1,
            "max_size": 1,
        }
        for b in bookings
    ]
    occupied += [
        {
            "session_date": c.session_date.isoformat(),
            "session_time": c.session_time.strftime("%H:%M"),
            "duration_minutes": c.duration_minutes,
            "session_type": "group",
            "subject": c.subject,
            "group_id": c.id,
            "current_size": c.current_size,
            "max_size": c.max_size,
        }
        for c in cohorts
    ]
    occupied.sort(key=lambda slot: (slot["session_date"], slot["session_time"]))

    return {
        "tutor_id": tutor_id,
        "from_date": from_date.isoformat(),
        "to_date": to_date.isoformat(),
        "windows": [
            {
                "weekday": WEEKDAYS[w.weekday],
                "available": w.available,
                "from": w.from_time.strftime("%H:%M") if w.from_time else None,
                "to": w.to_time.strftime("%H:%M") if w.to_time else None,
            }
            for w in windows
        ],
        "occupied": occupied,
    }
