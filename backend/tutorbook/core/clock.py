"""
Wall clock for scheduling decisions.

Session dates and times are naive local values in the marketplace timezone,
so "now" is computed in that timezone and then made naive for comparison.
Tests replace ``now`` with a fixed function.
"""

from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo

from tutorbook.core.config import get_settings


def _zone() -> tzinfo:
    name = get_settings().TIMEZONE
    return timezone.utc if name.upper() == "UTC" else ZoneInfo(name)


def now() -> datetime:
    """Current local time in the marketplace timezone, naive."""
    return datetime.now(_zone()).replace(tzinfo=None)


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp for audit columns."""
    return datetime.now(timezone.utc)
