"""
User Models - Verified principal and user context supplied by collaborators.
"""

from typing import Optional, Dict, Any
from pydantic import BaseModel, EmailStr


class Principal(BaseModel):
    """Identity verified by the external authentication collaborator."""
    user_id: str
    display_name: str = "User"
    email: Optional[EmailStr] = None


class UserLocation(BaseModel):
    """Current location of a user, all parts optional."""
    city: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def describe(self) -> str:
        """Human-readable 'city, country' for prompts."""
        return ", ".join(part for part in (self.city, self.country) if part) or "unknown"


class UserContext(BaseModel):
    """Read-only context passed to prompt assembly and action execution."""
    user_id: str
    display_name: Optional[str] = None
    location: Optional[UserLocation] = None

    def as_parameters(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "userContext": self.model_dump(exclude_none=True),
        }
