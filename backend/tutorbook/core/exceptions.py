"""
Typed errors raised by the scheduling core.

Each error carries a stable machine-readable ``code`` and an HTTP status so the
API layer can render it without inspecting the message. Callers branch on the
class (or ``code``/``reason``), never on prose.
"""

from enum import StrEnum
from typing import Any, Optional

from fastapi import status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class ConflictReason(StrEnum):
    SLOT_TAKEN = "slot_taken"
    GROUP_OCCUPIES_SLOT = "group_occupies_slot"
    INDIVIDUAL_OCCUPIES_SLOT = "individual_occupies_slot"
    GROUP_FULL = "group_full"
    COHORT_SUBJECT_MISMATCH = "cohort_subject_mismatch"
    OUTSIDE_AVAILABILITY = "outside_availability"


CONFLICT_MESSAGES = {
    ConflictReason.SLOT_TAKEN: "Tutor is already booked for this slot",
    ConflictReason.GROUP_OCCUPIES_SLOT: "Tutor is running a group session at this slot",
    ConflictReason.INDIVIDUAL_OCCUPIES_SLOT: "Tutor is already booked for an individual session at this slot",
    ConflictReason.GROUP_FULL: "Group session is full for this slot",
    ConflictReason.COHORT_SUBJECT_MISMATCH: "Tutor already runs a group session on another subject at this slot",
    ConflictReason.OUTSIDE_AVAILABILITY: "Tutor is not available at this time",
}


class BookingError(Exception):
    """Base class for every error the scheduling core reports to callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "booking_error"

    def __init__(self, message: str, *, code: Optional[str] = None, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(BookingError):
    """Missing or malformed input, or an illegal lifecycle transition."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ConflictError(BookingError):
    """The requested slot cannot be taken. Recoverable by picking another slot."""

    status_code = status.HTTP_409_CONFLICT
    code = "conflict"

    def __init__(self, reason: ConflictReason, message: Optional[str] = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message or CONFLICT_MESSAGES[reason], details=details)
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["reason"] = str(self.reason)
        return data


class RaceLossError(ConflictError):
    """A concurrent writer took the slot between our check and our write."""

    code = "race_lost"


class PayoutUnavailableError(BookingError):
    """The gateway account cannot perform automated payouts; refund must be manual."""

    status_code = HTTP_422_UNPROCESSABLE
    code = "payout_unavailable"


class GatewayTransientError(BookingError):
    """Network failure or 5xx from the payment gateway. Safe to retry the outer action."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "gateway_unavailable"


class GatewayError(BookingError):
    """The gateway rejected the request."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "gateway_error"
