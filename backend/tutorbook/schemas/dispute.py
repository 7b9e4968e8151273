"""
Pydantic schemas for dispute filing and resolution.
"""

from typing import Optional

from pydantic import BaseModel, Field

from tutorbook.models.booking import DisputeOutcome


class DisputeCreate(BaseModel):
    booking_id: int
    reason: str = Field(..., min_length=1, max_length=2000)
    bank_account_name: Optional[str] = Field(None, max_length=255)
    bank_account_number: Optional[str] = Field(None, max_length=64)
    bank_code: Optional[str] = Field(None, max_length=32)


class DisputeResolve(BaseModel):
    outcome: DisputeOutcome
