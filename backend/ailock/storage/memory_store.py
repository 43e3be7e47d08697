"""
In-memory Session Store.
Default store; state is lost on restart.
"""

import asyncio
import uuid
from collections import defaultdict
from typing import Optional, List, Dict

from ..core.exceptions import SessionNotFoundError
from ..models.session import Mode, Role, Session, Turn
from .interface import SessionStore, next_timestamp


class InMemorySessionStore(SessionStore):
    """Session store backed by plain dicts."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._turns: Dict[str, List[Turn]] = defaultdict(list)
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def create_session(self, user_id: str, mode: Mode) -> Session:
        now = next_timestamp(None)
        session = Session(
            session_id=str(uuid.uuid4()),
            user_id=user_id,
            mode=Mode(mode),
            created_at=now,
            last_activity=now,
        )
        self._sessions[session.session_id] = session
        return session.model_copy()

    async def get_session(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        return session.model_copy() if session else None

    async def latest_session(self, user_id: str, mode: Mode) -> Optional[Session]:
        candidates = [
            s for s in self._sessions.values()
            if s.user_id == user_id and s.mode == Mode(mode)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda s: s.last_activity).model_copy()

    async def list_sessions(self, user_id: str) -> List[Session]:
        sessions = [s.model_copy() for s in self._sessions.values() if s.user_id == user_id]
        return sorted(sessions, key=lambda s: s.last_activity, reverse=True)

    async def append_turn(self, session_id: str, role: Role, content: str) -> Turn:
        async with self._locks[session_id]:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)

            turns = self._turns[session_id]
            created_at = next_timestamp(turns[-1].created_at if turns else None)
            turn = Turn(
                turn_id=str(uuid.uuid4()),
                session_id=session_id,
                role=Role(role),
                content=content,
                created_at=created_at,
            )
            turns.append(turn)
            session.last_activity = max(created_at, session.last_activity)
            return turn

    async def recent_turns(self, session_id: str, limit: Optional[int] = None) -> List[Turn]:
        turns = self._turns.get(session_id, [])
        if limit is None:
            return list(turns)
        return list(turns[-limit:]) if limit > 0 else []

    async def touch(self, session_id: str) -> None:
        async with self._locks[session_id]:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            session.last_activity = next_timestamp(session.last_activity)
