"""
Session Store Interface - Abstract base class for session persistence.
This interface enables switching between in-memory and local-file storage.
"""

import base64
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional, List

from ..models.session import Mode, Role, Session, Turn, utcnow


class SessionStore(ABC):
    """
    Append-only store of sessions and their turns.

    Implementations serialize writes per session and guarantee that turns
    within one session get strictly increasing ``created_at`` values. Any
    I/O failure surfaces as StorageError.
    """

    @abstractmethod
    async def create_session(self, user_id: str, mode: Mode) -> Session:
        """
        Create a new session.

        Args:
            user_id: Owner of the session
            mode: Session mode

        Returns:
            Session: The persisted session
        """
        pass

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[Session]:
        """Return the session, or None if it does not exist."""
        pass

    @abstractmethod
    async def latest_session(self, user_id: str, mode: Mode) -> Optional[Session]:
        """Return the most recently active session for (user_id, mode)."""
        pass

    @abstractmethod
    async def list_sessions(self, user_id: str) -> List[Session]:
        """Return every session of a user, most recently active first."""
        pass

    @abstractmethod
    async def append_turn(self, session_id: str, role: Role, content: str) -> Turn:
        """
        Append a turn and update the session's last activity.

        Args:
            session_id: Target session
            role: Sender
            content: Full text of the turn

        Returns:
            Turn: The persisted turn

        Raises:
            SessionNotFoundError: unknown session
            StorageError: the write failed
        """
        pass

    @abstractmethod
    async def recent_turns(self, session_id: str, limit: Optional[int] = None) -> List[Turn]:
        """
        Return the last ``limit`` turns in chronological order.

        Args:
            session_id: Target session
            limit: Max turns, None for the whole history
        """
        pass

    @abstractmethod
    async def touch(self, session_id: str) -> None:
        """Update last activity without appending a turn."""
        pass


def next_timestamp(previous: Optional[datetime]) -> datetime:
    """Current time, bumped by one microsecond if the clock did not advance."""
    now = utcnow()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def user_directory(user_id: str) -> str:
    """
    Filesystem-safe directory name for an opaque user id.

    URL-safe base64 without padding, so distinct ids never collide and the
    name holds no path separator or dot. The empty id maps to "_", which no
    non-empty id encodes to.
    """
    encoded = base64.urlsafe_b64encode(user_id.encode("utf-8")).decode("ascii").rstrip("=")
    return encoded or "_"
