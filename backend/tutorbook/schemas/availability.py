"""
Pydantic schemas for weekly availability and schedule reads.
"""

from datetime import time
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class DayAvailability(BaseModel):
    available: bool = False
    from_time: Optional[time] = Field(None, alias="from")
    to_time: Optional[time] = Field(None, alias="to")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def check_times(self) -> "DayAvailability":
        if self.available and (self.from_time is None or self.to_time is None):
            raise ValueError("an available day needs both 'from' and 'to'")
        return self


class WeeklyAvailability(BaseModel):
    """Keyed by lowercase weekday name; missing days are unavailable."""

    tutor_id: str
    days: dict[str, DayAvailability]


class WeeklyAvailabilityUpdate(BaseModel):
    days: dict[str, DayAvailability]


class ScheduleWindow(BaseModel):
    weekday: str
    available: bool
    from_time: Optional[str] = Field(None, alias="from")
    to_time: Optional[str] = Field(None, alias="to")

    model_config = {"populate_by_name": True}


class OccupiedSlot(BaseModel):
    session_date: str
    session_time: str
    duration_minutes: int
    session_type: str
    subject: str
    group_id: Optional[str]
    current_size: int
    max_size: int


class ScheduleResponse(BaseModel):
    tutor_id: str
    from_date: str
    to_date: str
    windows: list[ScheduleWindow]
    occupied: list[OccupiedSlot]
    cached: bool = False
