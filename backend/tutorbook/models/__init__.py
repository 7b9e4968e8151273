from tutorbook.models.availability import TutorAvailability
from tutorbook.models.booking import Booking, BookingStatus, DisputeOutcome, SessionType
from tutorbook.models.booking_event import BookingEvent, LifecycleEvent
from tutorbook.models.group_cohort import GroupCohort
from tutorbook.models.payment import Payment, PaymentStatus

__all__ = [
    "TutorAvailability",
    "Booking", "BookingStatus", "DisputeOutcome", "SessionType",
    "BookingEvent", "LifecycleEvent",
    "GroupCohort",
    "Payment", "PaymentStatus",
]
