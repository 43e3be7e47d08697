"""
User Context Providers - Read-only location/identity context for users.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Dict

import aiofiles

from ..models.user import UserContext, UserLocation, Principal
from .interface import user_directory

logger = logging.getLogger(__name__)


class UserContextProvider(ABC):
    """Supplies user context for prompts and actions."""

    @abstractmethod
    async def get_location(self, user_id: str) -> Optional[UserLocation]:
        """Return the user's current location, or None if unknown."""
        pass

    async def get_context(self, user_id: str, principal: Optional[Principal] = None) -> UserContext:
        return UserContext(
            user_id=user_id,
            display_name=principal.display_name if principal else None,
            location=await self.get_location(user_id),
        )


class InMemoryUserContextProvider(UserContextProvider):
    """Locations held in a dict; used by default and in tests."""

    def __init__(self, locations: Optional[Dict[str, UserLocation]] = None):
        self._locations: Dict[str, UserLocation] = dict(locations or {})

    def set_location(self, user_id: str, location: Optional[UserLocation]) -> None:
        if location is None:
            self._locations.pop(user_id, None)
        else:
            self._locations[user_id] = location

    async def get_location(self, user_id: str) -> Optional[UserLocation]:
        return self._locations.get(user_id)


class LocalUserContextProvider(UserContextProvider):
    """Reads ``users/<user dir>/profile.json`` under the storage directory."""

    def __init__(self, base_dir: str = "./data"):
        self.base_dir = Path(base_dir).resolve()

    async def get_location(self, user_id: str) -> Optional[UserLocation]:
        path = self.base_dir / "users" / user_directory(user_id) / "profile.json"
        if not path.exists():
            return None
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                profile = json.loads(await f.read())
            location = profile.get("location") if isinstance(profile, dict) else None
            # ValidationError is a ValueError
            return UserLocation.model_validate(location) if isinstance(location, dict) else None
        except (OSError, ValueError, TypeError) as e:
            # Location is optional context; a broken profile only loses it
            logger.warning(f"Failed to read profile for {user_id}: {e}")
            return None
