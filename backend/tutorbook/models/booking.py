"""
Booking model: one student's seat in one tutoring session.

Key design decisions:
- Status stays in {pending, confirmed, cancelled}; completion is tracked by
  `completed_at` rather than a fourth status value
- A partial unique index on (tutor_id, session_date, session_time) over
  active individual bookings turns a lost race into an IntegrityError
- Group bookings point at a GroupCohort which owns the seat counter
- Dispute and reschedule details are flat columns on the booking
"""

from enum import StrEnum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy.orm import relationship

from tutorbook.db.base import Base, TimestampMixin


class BookingStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class SessionType(StrEnum):
    INDIVIDUAL = "individual"
    GROUP = "group"


class DisputeOutcome(StrEnum):
    REFUNDED = "refunded"
    REJECTED = "rejected"


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    tutor_id = Column(String(64), nullable=False, index=True)
    student_id = Column(String(64), nullable=False, index=True)

    session_date = Column(Date, nullable=False)
    session_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    subject = Column(String(120), nullable=False)
    message = Column(Text, nullable=True)

    price = Column(Numeric(10, 2), nullable=False)
    is_paid = Column(Boolean, nullable=False, default=False)
    is_tutor_paid = Column(Boolean, nullable=False, default=False)

    session_type = Column(String(20), nullable=False, default=SessionType.INDIVIDUAL)
    group_id = Column(String(36), ForeignKey("group_cohorts.id", ondelete="SET NULL"), nullable=True, index=True)
    recurrence_id = Column(String(36), nullable=True, index=True)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancel_reason = Column(String(255), nullable=True)

    # Dispute
    dispute_filed = Column(Boolean, nullable=False, default=False)
    dispute_reason = Column(Text, nullable=True)
    dispute_resolved = Column(Boolean, nullable=False, default=False)
    dispute_outcome = Column(String(20), nullable=True)
    dispute_filed_at = Column(DateTime(timezone=True), nullable=True)
    dispute_resolved_at = Column(DateTime(timezone=True), nullable=True)
    dispute_bank_account_name = Column(String(255), nullable=True)
    dispute_bank_account_number = Column(String(64), nullable=True)
    dispute_bank_code = Column(String(32), nullable=True)

    # Reschedule
    was_rescheduled = Column(Boolean, nullable=False, default=False)
    rescheduled_from_date = Column(Date, nullable=True)
    rescheduled_from_time = Column(Time, nullable=True)
    reschedule_note = Column(Text, nullable=True)

    cohort = relationship("GroupCohort", back_populates="bookings", lazy="selectin")
    events = relationship(
        "BookingEvent",
        back_populates="booking",
        order_by="BookingEvent.id",
        lazy="raise",
    )

    __table_args__ = (
        Index("ix_bookings_tutor_date", "tutor_id", "session_date"),
        Index(
            "uq_bookings_active_individual_slot",
            "tutor_id",
            "session_date",
            "session_time",
            unique=True,
            postgresql_where=text("session_type = 'individual' AND status <> 'cancelled'"),
            sqlite_where=text("session_type = 'individual' AND status <> 'cancelled'"),
        ),
        CheckConstraint("status IN ('pending', 'confirmed', 'cancelled')", name="check_booking_status"),
        CheckConstraint("session_type IN ('individual', 'group')", name="check_booking_session_type"),
        CheckConstraint(
            "dispute_outcome IS NULL OR dispute_outcome IN ('refunded', 'rejected')",
            name="check_booking_dispute_outcome",
        ),
        CheckConstraint(
            "NOT dispute_resolved OR (dispute_outcome IS NOT NULL AND dispute_resolved_at IS NOT NULL)",
            name="check_booking_dispute_resolution",
        ),
        CheckConstraint("price > 0", name="check_booking_price_positive"),
        CheckConstraint("duration_minutes > 0", name="check_booking_duration_positive"),
    )

    @property
    def is_active(self) -> bool:
        return self.status != BookingStatus.CANCELLED

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def max_group_size(self) -> int:
        return self.cohort.max_size if self.cohort is not None else 1

    @property
    def current_group_size(self) -> int:
        return self.cohort.current_size if self.cohort is not None else 1

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, tutor={self.tutor_id}, student={self.student_id}, "
            f"slot={self.session_date} {self.session_time}, status={self.status})>"
        )
