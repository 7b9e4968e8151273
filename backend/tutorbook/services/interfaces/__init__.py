"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .local_slot_lock import LocalSlotLock
from .notifier import Notifier
from .payment_gateway import BankDetails, PayerInfo, PaymentGateway, VerificationResult
from .slot_lock import SlotLock, slot_key
from .user_directory import UserDirectory, UserProfile

__all__ = [
    "LocalSlotLock",
    "Notifier",
    "BankDetails", "PayerInfo", "PaymentGateway", "VerificationResult",
    "SlotLock", "slot_key",
    "UserDirectory", "UserProfile",
]
