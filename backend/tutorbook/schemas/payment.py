"""
Pydantic schemas for checkout and gateway callbacks.
"""

from decimal import Decimal

from pydantic import BaseModel, EmailStr, Field


class CheckoutRequest(BaseModel):
    booking_id: int
    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)


class CheckoutResponse(BaseModel):
    booking_id: int
    tx_ref: str
    amount: Decimal
    checkout_url: str


class WebhookAck(BaseModel):
    tx_ref: str
    result: str
