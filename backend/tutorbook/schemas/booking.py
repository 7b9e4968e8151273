"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

from tutorbook.models.booking import SessionType


class BookingCreate(BaseModel):
    tutor_id: str = Field(..., min_length=1, max_length=64)
    student_id: str = Field(..., min_length=1, max_length=64)
    session_date: date
    session_time: time
    subject: str = Field(..., min_length=1, max_length=120)
    session_type: SessionType = SessionType.INDIVIDUAL
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    message: Optional[str] = Field(None, max_length=2000)
    duration_minutes: Optional[int] = Field(None, gt=0, le=480)
    max_group_size: Optional[int] = Field(None, gt=0, le=50)


class BookingResponse(BaseModel):
    id: int
    tutor_id: str
    student_id: str
    session_date: date
    session_time: time
    duration_minutes: int
    subject: str
    message: Optional[str]
    price: Decimal
    is_paid: bool
    is_tutor_paid: bool
    session_type: SessionType
    group_id: Optional[str]
    max_group_size: int
    current_group_size: int
    recurrence_id: Optional[str]
    status: str
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancel_reason: Optional[str]

    dispute_filed: bool
    dispute_reason: Optional[str]
    dispute_resolved: bool
    dispute_outcome: Optional[str]
    dispute_filed_at: Optional[datetime]
    dispute_resolved_at: Optional[datetime]

    was_rescheduled: bool
    rescheduled_from_date: Optional[date]
    rescheduled_from_time: Optional[time]
    reschedule_note: Optional[str]

    created_at: datetime

    model_config = {"from_attributes": True}


class RescheduleRequest(BaseModel):
    new_date: date
    new_time: time
    note: Optional[str] = Field(None, max_length=1000)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class BookingEventResponse(BaseModel):
    id: int
    booking_id: int
    event: str
    details: Optional[dict[str, Any]]
    created_at: datetime

    model_config = {"from_attributes": True}


class RecurringCreate(BaseModel):
    tutor_id: str = Field(..., min_length=1, max_length=64)
    student_id: str = Field(..., min_length=1, max_length=64)
    start_date: date
    weekday: str = Field(..., min_length=1)
    session_time: time
    duration_months: int = Field(..., ge=1)
    subject: str = Field(..., min_length=1, max_length=120)
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    message: Optional[str] = Field(None, max_length=2000)
    duration_minutes: Optional[int] = Field(None, gt=0, le=480)


class RecurringResponse(BaseModel):
    recurrence_id: str
    tx_ref: str
    total_price: Decimal
    first_session_date: date
    sessions: list[BookingResponse]


class RecurrenceCancelResponse(BaseModel):
    recurrence_id: str
    cancelled_booking_ids: list[int]


class TutorStatusResponse(BaseModel):
    tutor_id: str
    has_individual_booking: bool
    has_group_booking: bool
    individual_bookings: list[BookingResponse]
    group_bookings: list[BookingResponse]
