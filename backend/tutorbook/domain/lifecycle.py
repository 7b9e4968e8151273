"""
Booking lifecycle state machine.

    pending ──payment──▶ confirmed ──(complete event)
       │                     │
       └──────▶ cancelled ◀──┘

Completion is an event, not a state: a completed booking stays `confirmed`
with `completed_at` set. Disputes and reschedules are side transitions guarded
here so every service applies the same rules.
"""

from tutorbook.core.exceptions import ValidationError
from tutorbook.models.booking import Booking, BookingStatus

TRANSITIONS: dict[str, frozenset[str]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
}

RESCHEDULABLE = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(booking: Booking, target: BookingStatus) -> None:
    if not can_transition(booking.status, target):
        raise ValidationError(
            f"Booking {booking.id} cannot move from {booking.status} to {target}",
            code="illegal_transition",
            details={"booking_id": booking.id, "from": booking.status, "to": str(target)},
        )


def ensure_reschedulable(booking: Booking) -> None:
    if booking.status not in RESCHEDULABLE:
        raise ValidationError(
            f"Booking {booking.id} is {booking.status} and cannot be rescheduled",
            code="not_reschedulable",
            details={"booking_id": booking.id, "status": booking.status},
        )
    if booking.is_completed:
        raise ValidationError(
            f"Booking {booking.id} has already taken place",
            code="not_reschedulable",
            details={"booking_id": booking.id},
        )


def ensure_completable(booking: Booking) -> None:
    if booking.status != BookingStatus.CONFIRMED:
        raise ValidationError(
            f"Only confirmed bookings can be completed (booking {booking.id} is {booking.status})",
            code="not_completable",
            details={"booking_id": booking.id, "status": booking.status},
        )


def ensure_dispute_can_be_filed(booking: Booking) -> None:
    if booking.dispute_filed:
        raise ValidationError(
            "Dispute already filed for this booking",
            code="dispute_already_filed",
            details={"booking_id": booking.id},
        )
    if booking.status == BookingStatus.CANCELLED:
        raise ValidationError(
            "Cannot dispute a cancelled booking",
            code="booking_cancelled",
            details={"booking_id": booking.id},
        )


def ensure_dispute_open(booking: Booking) -> None:
    if not booking.dispute_filed or booking.dispute_resolved:
        raise ValidationError(
            "No open dispute for this booking",
            code="no_open_dispute",
            details={"booking_id": booking.id},
        )
