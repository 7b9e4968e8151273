"""
User/profile store interface.
The booking core reads profiles; it never writes them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class UserProfile:
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.id


class UserDirectory(ABC):
    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        """Return the profile, or None when the user does not exist."""
