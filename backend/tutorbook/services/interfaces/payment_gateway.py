"""
Payment gateway interface.

Implementations translate provider failures into the core's error types:
- GatewayTransientError: network failure or 5xx, safe to retry later
- PayoutUnavailableError: the account cannot send payouts at all
- GatewayError: the provider rejected the request
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional


@dataclass(frozen=True)
class PayerInfo:
    email: str
    first_name: str
    last_name: str


@dataclass(frozen=True)
class BankDetails:
    account_name: str
    account_number: str
    bank_code: str


@dataclass(frozen=True)
class VerificationResult:
    tx_ref: str
    status: str  # "completed", "failed" or "pending"
    raw: Optional[dict[str, Any]] = None


class PaymentGateway(ABC):
    name: str = "abstract"

    @abstractmethod
    async def init_checkout(
        self,
        amount: Decimal,
        payer: PayerInfo,
        tx_ref: str,
        callback_url: str,
        return_url: str,
    ) -> str:
        """Start a hosted checkout and return the URL the payer is sent to."""

    @abstractmethod
    async def verify(self, tx_ref: str) -> VerificationResult:
        """Ask the gateway for the authoritative status of a transaction."""

    @abstractmethod
    async def refund(self, tx_ref: str, bank: BankDetails, amount: Decimal, reference: str) -> str:
        """Pay `amount` out to the given bank account; returns the gateway's transfer reference."""
