"""
User directory implementations backed by the profile service.
"""

from typing import Optional

import httpx

from tutorbook.core.exceptions import GatewayTransientError
from tutorbook.core.logging import get_logger
from tutorbook.services.interfaces.user_directory import UserDirectory, UserProfile

logger = get_logger(__name__)


class HttpUserDirectory(UserDirectory):
    """Reads profiles from `GET {base_url}/users/{id}`."""

    def __init__(self, base_url: str, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(f"{self.base_url}/users/{user_id}")
        except httpx.TransportError as e:
            logger.error("profile_service_unreachable", user_id=user_id, error=str(e))
            raise GatewayTransientError("Profile service unreachable") from e

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            logger.error("profile_service_error", user_id=user_id, status_code=response.status_code)
            raise GatewayTransientError(
                "Profile service error",
                details={"status_code": response.status_code},
            )

        data = response.json()
        user = data.get("user", data)
        return UserProfile(
            id=str(user.get("id") or user.get("_id") or user_id),
            name=user.get("name"),
            email=user.get("email"),
            role=user.get("role"),
        )


class UnverifiedUserDirectory(UserDirectory):
    """
    Accepts every id without a lookup.

    Use when no profile service is configured (local development); party
    validation then only checks that ids are present.
    """

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        return UserProfile(id=user_id)
