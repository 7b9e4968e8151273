"""
Payment: one funds-movement attempt, correlated with the gateway by tx_ref.

Rows are never deleted; they are the audit trail for checkout, webhook and
refund activity.
"""

from enum import StrEnum

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String

from tutorbook.db.base import Base, TimestampMixin


class PaymentStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    recurrence_id = Column(String(36), nullable=True, index=True)
    student_id = Column(String(64), nullable=False)
    tutor_id = Column(String(64), nullable=False)

    tx_ref = Column(String(100), nullable=False, unique=True, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(10), nullable=False, default="ETB")
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING)
    gateway_response = Column(JSON, nullable=True)

    refund_reference = Column(String(100), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('pending', 'completed', 'failed')", name="check_payment_status"),
        CheckConstraint("amount > 0", name="check_payment_amount_positive"),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, tx_ref={self.tx_ref}, status={self.status})>"
