"""
Notification delivery.

Booking operations never wait on, or fail because of, notifications:
`notify_safely` swallows delivery errors after logging them.
"""

import httpx

from tutorbook.core.logging import get_logger
from tutorbook.core.metrics import notification_failures
from tutorbook.services.interfaces.notifier import Notifier

logger = get_logger(__name__)


class LogNotifier(Notifier):
    """Writes notifications to the log. Used when no notification service is configured."""

    async def notify(self, user_id: str, message: str, kind: str = "info") -> None:
        logger.info("notification", user_id=user_id, kind=kind, message=message)


class HttpNotifier(Notifier):
    """Posts notifications to the platform's notification service."""

    def __init__(self, base_url: str, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def notify(self, user_id: str, message: str, kind: str = "info") -> None:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{self.base_url}/notifications",
                json={"userId": user_id, "message": message, "type": kind},
            )
            response.raise_for_status()


async def notify_safely(notifier: Notifier, user_id: str, message: str, kind: str = "info") -> None:
    try:
        await notifier.notify(user_id, message, kind)
    except Exception as e:
        notification_failures.inc()
        logger.warning("notification_failed", user_id=user_id, kind=kind, error=str(e))
