from tutorbook.schemas.availability import (
    DayAvailability,
    ScheduleResponse,
    WeeklyAvailability,
    WeeklyAvailabilityUpdate,
)
from tutorbook.schemas.booking import (
    BookingCreate,
    BookingEventResponse,
    BookingResponse,
    CancelRequest,
    RecurrenceCancelResponse,
    RecurringCreate,
    RecurringResponse,
    RescheduleRequest,
    TutorStatusResponse,
)
from tutorbook.schemas.dispute import DisputeCreate, DisputeResolve
from tutorbook.schemas.payment import CheckoutRequest, CheckoutResponse, WebhookAck

__all__ = [
    "DayAvailability", "ScheduleResponse", "WeeklyAvailability", "WeeklyAvailabilityUpdate",
    "BookingCreate", "BookingEventResponse", "BookingResponse", "CancelRequest",
    "RecurrenceCancelResponse", "RecurringCreate", "RecurringResponse", "RescheduleRequest",
    "TutorStatusResponse",
    "DisputeCreate", "DisputeResolve",
    "CheckoutRequest", "CheckoutResponse", "WebhookAck",
]
