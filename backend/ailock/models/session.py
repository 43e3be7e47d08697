"""
Session Models - Defines structures for chat sessions and their turns.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


class Mode(str, Enum):
    """Behavioral profile of a session."""
    RESEARCHER = "researcher"
    CREATOR = "creator"
    ANALYST = "analyst"


class Role(str, Enum):
    """Sender of a turn."""
    USER = "user"
    ASSISTANT = "assistant"


class GenerationState(str, Enum):
    """Per-session generation state."""
    IDLE = "idle"
    GENERATING = "generating"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Session(BaseModel):
    """One conversation thread for a user in one mode."""
    session_id: str
    user_id: str
    mode: Mode
    created_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)


class Turn(BaseModel):
    """A single persisted utterance. Immutable once created."""
    turn_id: str
    session_id: str
    role: Role
    content: str
    created_at: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": True}


class SessionList(BaseModel):
    """List of sessions."""
    sessions: List[Session]


class SessionHistory(BaseModel):
    """Session with its ordered turns."""
    session: Session
    turns: List[Turn]


class StartSessionRequest(BaseModel):
    """Body of the start-or-resume endpoint."""
    mode: Mode = Mode.RESEARCHER


class MessageRequest(BaseModel):
    """Body of the non-streaming submit endpoint."""
    content: str


class GenerationOutcome(BaseModel):
    """Terminal outcome of one generation."""
    session_id: str
    content: str
    success: bool
    actions: List[Dict[str, Any]] = Field(default_factory=list)
    usage: Dict[str, int] = Field(default_factory=dict)
    model: Optional[str] = None
    provider: Optional[str] = None
    turn_id: Optional[str] = None
    discarded: bool = False
