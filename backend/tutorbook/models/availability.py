"""
Weekly availability: which hours of which weekdays a tutor can be booked.

`from_time > to_time` is a window that runs past midnight; it is stored as
given and interpreted by the timeline helpers.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, String, Time, UniqueConstraint

from tutorbook.db.base import Base, TimestampMixin


class TutorAvailability(Base, TimestampMixin):
    __tablename__ = "tutor_availability"

    id = Column(Integer, primary_key=True)
    tutor_id = Column(String(64), nullable=False, index=True)
    weekday = Column(Integer, nullable=False)  # 0 = Monday
    available = Column(Boolean, nullable=False, default=False)
    from_time = Column(Time, nullable=True)
    to_time = Column(Time, nullable=True)

    __table_args__ = (
        UniqueConstraint("tutor_id", "weekday", name="uq_availability_tutor_weekday"),
        CheckConstraint("weekday BETWEEN 0 AND 6", name="check_availability_weekday"),
    )

    def __repr__(self) -> str:
        return f"<TutorAvailability(tutor={self.tutor_id}, weekday={self.weekday}, {self.from_time}-{self.to_time})>"
