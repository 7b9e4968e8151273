"""
Collaborator factory.
Configures which slot-lock strategy and which external adapters to use.

Each getter returns a process-wide singleton and doubles as a FastAPI
dependency, so tests swap implementations with `app.dependency_overrides`.
"""

from typing import Optional

from tutorbook.core.config import get_settings
from tutorbook.integrations.chapa_client import ChapaGateway
from tutorbook.services.interfaces.local_slot_lock import LocalSlotLock
from tutorbook.services.interfaces.notifier import Notifier
from tutorbook.services.interfaces.payment_gateway import PaymentGateway
from tutorbook.services.interfaces.slot_lock import SlotLock
from tutorbook.services.interfaces.user_directory import UserDirectory
from tutorbook.services.notification_service import HttpNotifier, LogNotifier
from tutorbook.services.slot_lock_service import RedisSlotLock
from tutorbook.services.user_directory_service import HttpUserDirectory, UnverifiedUserDirectory


def build_slot_lock() -> SlotLock:
    """
    Strategy selection:
    - "local": LocalSlotLock (single worker, development, tests)
    - "redis": RedisSlotLock (several workers behind a load balancer)

    Override via the SLOT_LOCK_STRATEGY env var.
    """
    settings = get_settings()
    if settings.SLOT_LOCK_STRATEGY == "redis":
        return RedisSlotLock(
            ttl_seconds=settings.SLOT_LOCK_TTL_SECONDS,
            wait_seconds=settings.SLOT_LOCK_WAIT_SECONDS,
        )
    return LocalSlotLock(wait_seconds=settings.SLOT_LOCK_WAIT_SECONDS)


_slot_lock: Optional[SlotLock] = None
_gateway: Optional[PaymentGateway] = None
_notifier: Optional[Notifier] = None
_user_directory: Optional[UserDirectory] = None


def get_slot_lock() -> SlotLock:
    global _slot_lock
    if _slot_lock is None:
        _slot_lock = build_slot_lock()
    return _slot_lock


def get_payment_gateway() -> PaymentGateway:
    global _gateway
    if _gateway is None:
        settings = get_settings()
        _gateway = ChapaGateway(
            secret_key=settings.CHAPA_SECRET_KEY,
            base_url=settings.CHAPA_BASE_URL,
            currency=settings.PAYMENT_CURRENCY,
            timeout=settings.OUTBOUND_HTTP_TIMEOUT,
        )
    return _gateway


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        settings = get_settings()
        if settings.NOTIFICATION_SERVICE_URL:
            _notifier = HttpNotifier(settings.NOTIFICATION_SERVICE_URL, timeout=settings.OUTBOUND_HTTP_TIMEOUT)
        else:
            _notifier = LogNotifier()
    return _notifier


def get_user_directory() -> UserDirectory:
    global _user_directory
    if _user_directory is None:
        settings = get_settings()
        if settings.PROFILE_SERVICE_URL:
            _user_directory = HttpUserDirectory(settings.PROFILE_SERVICE_URL, timeout=settings.OUTBOUND_HTTP_TIMEOUT)
        else:
            _user_directory = UnverifiedUserDirectory()
    return _user_directory
