"""
Append-only lifecycle log for bookings.

Collaborators (ratings, payouts, notifications) read these events instead of
inferring history from the booking's current columns.
"""

from enum import StrEnum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship

from tutorbook.db.base import Base


class LifecycleEvent(StrEnum):
    CREATED = "created"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_FAILED = "payment_failed"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"
    DISPUTE_FILED = "dispute_filed"
    DISPUTE_RESOLVED = "dispute_resolved"
    CANCELLED = "cancelled"


class BookingEvent(Base):
    __tablename__ = "booking_events"

    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    event = Column(String(40), nullable=False)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    booking = relationship("Booking", back_populates="events")

    def __repr__(self) -> str:
        return f"<BookingEvent(booking={self.booking_id}, event={self.event})>"
