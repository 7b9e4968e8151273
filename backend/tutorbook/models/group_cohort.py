"""
Group cohort: the shared slot behind every group booking.

`current_size` is only ever changed with conditional UPDATEs
(increment only while below `max_size`), never read-modify-write.
"""

import uuid

from sqlalchemy import CheckConstraint, Column, Date, Integer, String, Time, UniqueConstraint
from sqlalchemy.orm import relationship

from tutorbook.db.base import Base, TimestampMixin


def new_group_id() -> str:
    return str(uuid.uuid4())


class GroupCohort(Base, TimestampMixin):
    __tablename__ = "group_cohorts"

    id = Column(String(36), primary_key=True, default=new_group_id)
    tutor_id = Column(String(64), nullable=False, index=True)
    session_date = Column(Date, nullable=False)
    session_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    subject = Column(String(120), nullable=False)
    max_size = Column(Integer, nullable=False, default=5)
    current_size = Column(Integer, nullable=False, default=0)

    bookings = relationship("Booking", back_populates="cohort", lazy="raise")

    __table_args__ = (
        # One cohort per tutor slot, whatever the subject
        UniqueConstraint("tutor_id", "session_date", "session_time", name="uq_cohort_tutor_slot"),
        CheckConstraint("current_size >= 0", name="check_cohort_size_non_negative"),
        CheckConstraint("current_size <= max_size", name="check_cohort_size_lte_max"),
        CheckConstraint("max_size > 0", name="check_cohort_max_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<GroupCohort(id={self.id}, tutor={self.tutor_id}, "
            f"slot={self.session_date} {self.session_time}, size={self.current_size}/{self.max_size})>"
        )
