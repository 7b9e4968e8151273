"""
Notification sender interface.
"""

from abc import ABC, abstractmethod


class Notifier(ABC):
    """
    Delivers a short message to a user.

    Delivery is fire-and-forget from the booking core's point of view: callers
    go through `notify_safely`, which logs failures instead of raising.
    """

    @abstractmethod
    async def notify(self, user_id: str, message: str, kind: str = "info") -> None:
        pass
