"""
Time arithmetic on linear timelines.

Booked sessions live on an absolute minute timeline (days since 0001-01-01 ×
1440 + minute of day), so a session starting at 23:30 naturally overlaps one
at 00:00 on the next date. Weekly availability windows live on a
minute-of-week timeline (Monday 00:00 = 0); a window whose ``to`` is earlier
than its ``from`` simply extends past the end of its day.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

MINUTES_PER_DAY = 24 * 60
MINUTES_PER_WEEK = 7 * MINUTES_PER_DAY

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(frozen=True)
class Interval:
    """Half-open interval [start, start + duration) in minutes."""

    start: int
    duration: int

    @property
    def end(self) -> int:
        return self.start + self.duration

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, other: "Interval") -> bool:
        return self.start <= other.start and other.end <= self.end


def minute_of_day(t: time) -> int:
    return t.hour * 60 + t.minute


def session_interval(session_date: date, session_time: time, duration_minutes: int) -> Interval:
    """Place a session on the absolute minute timeline."""
    return Interval(session_date.toordinal() * MINUTES_PER_DAY + minute_of_day(session_time), duration_minutes)


def dates_touched(interval: Interval) -> list[date]:
    """Every calendar date an absolute interval covers, in order."""
    first = interval.start // MINUTES_PER_DAY
    last = (interval.end - 1) // MINUTES_PER_DAY
    return [date.fromordinal(day) for day in range(first, last + 1)]


def window_interval(weekday: int, from_time: time, to_time: time) -> Interval:
    """
    Place a weekly availability window on the minute-of-week timeline.

    ``from_time > to_time`` runs into the next day; equal times mean the whole day.
    """
    start = weekday * MINUTES_PER_DAY + minute_of_day(from_time)
    length = (minute_of_day(to_time) - minute_of_day(from_time)) % MINUTES_PER_DAY
    return Interval(start, length or MINUTES_PER_DAY)


def week_interval(session_date: date, session_time: time, duration_minutes: int) -> Interval:
    """Project a dated session onto the minute-of-week timeline."""
    start = session_date.weekday() * MINUTES_PER_DAY + minute_of_day(session_time)
    return Interval(start, duration_minutes)


def window_covers(window: Interval, session: Interval) -> bool:
    """
    True when a weekly window fully covers a session on the week timeline.

    Windows may extend past the end of the week (Sunday night into Monday
    morning), so the session is also tested one week later.
    """
    shifted = Interval(session.start + MINUTES_PER_WEEK, session.duration)
    return window.contains(session) or window.contains(shifted)


def slot_datetime(session_date: date, session_time: time) -> datetime:
    return datetime.combine(session_date, session_time)


def slot_end(session_date: date, session_time: time, duration_minutes: int) -> datetime:
    return slot_datetime(session_date, session_time) + timedelta(minutes=duration_minutes)


def add_months(start: date, months: int) -> date:
    """Calendar-month addition; the day is clamped to the last day of the target month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    if month == 12:
        days_in_month = 31
    else:
        days_in_month = (date(year, month + 1, 1) - timedelta(days=1)).day
    return date(year, month, min(start.day, days_in_month))


def weekday_index(name: str) -> int:
    try:
        return WEEKDAYS.index(name.strip().lower())
    except ValueError:
        raise ValueError(f"Unknown weekday: {name!r}") from None
