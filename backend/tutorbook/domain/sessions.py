"""
Session variants.

A booking is either an individual session or a seat in a group cohort. Code
at a transition point calls `classify()` and branches on the variant type
instead of testing `session_type` strings and optional group fields.
"""

from dataclasses import dataclass
from typing import Union

from tutorbook.models.booking import Booking, SessionType


@dataclass(frozen=True)
class IndividualSession:
    booking_id: int


@dataclass(frozen=True)
class GroupSession:
    booking_id: int
    group_id: str
    max_size: int
    current_size: int


Session = Union[IndividualSession, GroupSession]


def classify(booking: Booking) -> Session:
    if booking.session_type == SessionType.INDIVIDUAL:
        return IndividualSession(booking_id=booking.id)
    if booking.session_type == SessionType.GROUP:
        if booking.group_id is None:
            raise ValueError(f"Group booking {booking.id} has no cohort")
        return GroupSession(
            booking_id=booking.id,
            group_id=booking.group_id,
            max_size=booking.max_group_size,
            current_size=booking.current_group_size,
        )
    raise ValueError(f"Unknown session type {booking.session_type!r} on booking {booking.id}")
