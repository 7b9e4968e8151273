"""
Tests for interval arithmetic on the absolute and weekly timelines.
"""

from datetime import date, time

import pytest

from tutorbook.core.timeline import (
    MINUTES_PER_WEEK,
    Interval,
    add_months,
    dates_touched,
    session_interval,
    week_interval,
    window_covers,
    window_interval,
    weekday_index,
)


def test_back_to_back_sessions_do_not_overlap():
    """[09:00, 10:00) and [10:00, 11:00) share only an endpoint."""
    first = session_interval(date(2024, 7, 1), time(9, 0), 60)
    second = session_interval(date(2024, 7, 1), time(10, 0), 60)
    assert not first.overlaps(second)
    assert not second.overlaps(first)


def test_partial_overlap_detected():
    first = session_interval(date(2024, 7, 1), time(9, 0), 60)
    second = session_interval(date(2024, 7, 1), time(9, 30), 60)
    assert first.overlaps(second)


def test_session_crossing_midnight_overlaps_next_day():
    """23:30 + 60 min runs into 00:00-00:30 of the following date."""
    late = session_interval(date(2024, 7, 1), time(23, 30), 60)
    early = session_interval(date(2024, 7, 2), time(0, 0), 60)
    assert late.overlaps(early)
    assert dates_touched(late) == [date(2024, 7, 1), date(2024, 7, 2)]


def test_dates_touched_single_day():
    assert dates_touched(session_interval(date(2024, 7, 1), time(22, 0), 120)) == [date(2024, 7, 1)]


def test_window_running_past_midnight():
    """from > to extends into the next day."""
    window = window_interval(0, time(22, 0), time(2, 0))
    assert window.duration == 4 * 60
    session = week_interval(date(2024, 7, 1), time(23, 30), 60)  # Monday 23:30
    assert window_covers(window, session)


def test_equal_from_and_to_is_a_full_day():
    window = window_interval(2, time(8, 0), time(8, 0))
    assert window.duration == 24 * 60


def test_sunday_window_covers_monday_morning():
    """A Sunday 22:00-03:00 window wraps past the end of the week."""
    window = window_interval(6, time(22, 0), time(3, 0))
    monday_early = week_interval(date(2024, 7, 1), time(1, 0), 60)
    assert window.end > MINUTES_PER_WEEK
    assert window_covers(window, monday_early)


def test_window_must_hold_whole_session():
    window = window_interval(0, time(9, 0), time(12, 0))
    assert window_covers(window, week_interval(date(2024, 7, 1), time(11, 0), 60))
    assert not window_covers(window, week_interval(date(2024, 7, 1), time(11, 30), 60))


def test_interval_contains():
    assert Interval(0, 100).contains(Interval(10, 90))
    assert not Interval(0, 100).contains(Interval(10, 91))


@pytest.mark.parametrize(
    "start, months, expected",
    [
        (date(2024, 1, 31), 1, date(2024, 2, 29)),
        (date(2023, 1, 31), 1, date(2023, 2, 28)),
        (date(2024, 11, 15), 2, date(2025, 1, 15)),
        (date(2024, 10, 31), 2, date(2024, 12, 31)),
        (date(2024, 6, 26), 12, date(2025, 6, 26)),
    ],
)
def test_add_months_clamps_day(start, months, expected):
    assert add_months(start, months) == expected


def test_weekday_index():
    assert weekday_index("Monday") == 0
    assert weekday_index(" sunday ") == 6
    with pytest.raises(ValueError):
        weekday_index("funday")
