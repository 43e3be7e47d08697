"""
Local Filesystem Session Store.

Layout under the base directory:
    sessions/<session_id>.json          session document
    sessions/<session_id>.turns.jsonl   append-only turn log
    users/<user dir>/sessions.json      per-user session index, see user_directory()
"""

import asyncio
import json
import logging
import re
import uuid
from collections import defaultdict
from pathlib import Path
from typing import Optional, List, Dict, Any

import aiofiles

from ..core.exceptions import SessionNotFoundError, StorageError
from ..models.session import Mode, Role, Session, Turn
from .interface import SessionStore, next_timestamp, user_directory

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_.@-]+$")


class LocalSessionStore(SessionStore):
    """
    Local filesystem session store.
    Sessions are cached in memory after first read; turns are read from disk.
    """

    def __init__(self, base_dir: str = "./data"):
        """
        Initialize local storage with a base directory.

        Args:
            base_dir: Base directory for all stored files
        """
        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._sessions: Dict[str, Session] = {}
        self._last_turn_at: Dict[str, Any] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._index_lock = asyncio.Lock()

    def _get_full_path(self, path: str) -> Path:
        """Convert relative path to full absolute path within base directory."""
        full_path = (self.base_dir / path).resolve()

        # Security check: ensure path is within base_dir
        if not str(full_path).startswith(str(self.base_dir)):
            raise ValueError(f"Invalid path: {path} - path traversal detected")

        return full_path

    def _session_path(self, session_id: str) -> Path:
        return self._get_full_path(f"sessions/{session_id}.json")

    def _turns_path(self, session_id: str) -> Path:
        return self._get_full_path(f"sessions/{session_id}.turns.jsonl")

    def _index_path(self, user_id: str) -> Path:
        return self._get_full_path(f"users/{user_directory(user_id)}/sessions.json")

    async def _write_json(self, path: Path, data: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data, indent=2, default=str))
        tmp_path.replace(path)

    async def _read_json(self, path: Path) -> Optional[Any]:
        if not path.exists():
            return None
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            return json.loads(await f.read())

    async def _save_session(self, session: Session) -> None:
        await self._write_json(self._session_path(session.session_id), session.model_dump(mode="json"))

    async def _load_index(self, user_id: str) -> List[str]:
        return await self._read_json(self._index_path(user_id)) or []

    async def create_session(self, user_id: str, mode: Mode) -> Session:
        now = next_timestamp(None)
        session = Session(
            session_id=str(uuid.uuid4()),
            user_id=user_id,
            mode=Mode(mode),
            created_at=now,
            last_activity=now,
        )
        try:
            await self._save_session(session)
            async with self._index_lock:
                index = await self._load_index(user_id)
                index.append(session.session_id)
                await self._write_json(self._index_path(user_id), index)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to create session for user {user_id}: {e}", exc_info=True)
            raise StorageError(f"Failed to create session: {e}") from e

        self._sessions[session.session_id] = session
        logger.debug(f"Session created on disk: {session.session_id}")
        return session.model_copy()

    async def get_session(self, session_id: str) -> Optional[Session]:
        if not _SAFE_ID.match(session_id):
            return None
        cached = self._sessions.get(session_id)
        if cached is not None:
            return cached.model_copy()
        try:
            data = await self._read_json(self._session_path(session_id))
            if data is None:
                return None
            session = Session.model_validate(data)
        except (OSError, ValueError) as e:
            # Unreadable or corrupt document; ValidationError is a ValueError
            logger.error(f"Failed to read session {session_id}: {e}", exc_info=True)
            raise StorageError(f"Failed to read session: {e}") from e
        self._sessions[session_id] = session
        return session.model_copy()

    async def list_sessions(self, user_id: str) -> List[Session]:
        try:
            index = await self._load_index(user_id)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read session index for {user_id}: {e}", exc_info=True)
            raise StorageError(f"Failed to read session index: {e}") from e

        sessions = []
        for session_id in index:
            session = await self.get_session(session_id)
            if session is not None:
                sessions.append(session)
        return sorted(sessions, key=lambda s: s.last_activity, reverse=True)

    async def latest_session(self, user_id: str, mode: Mode) -> Optional[Session]:
        for session in await self.list_sessions(user_id):
            if session.mode == Mode(mode):
                return session
        return None

    async def _last_turn_timestamp(self, session_id: str):
        if session_id not in self._last_turn_at:
            turns = await self._read_turns(session_id)
            self._last_turn_at[session_id] = turns[-1].created_at if turns else None
        return self._last_turn_at[session_id]

    async def append_turn(self, session_id: str, role: Role, content: str) -> Turn:
        async with self._locks[session_id]:
            session = await self.get_session(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)

            try:
                created_at = next_timestamp(await self._last_turn_timestamp(session_id))
                turn = Turn(
                    turn_id=str(uuid.uuid4()),
                    session_id=session_id,
                    role=Role(role),
                    content=content,
                    created_at=created_at,
                )
                path = self._turns_path(session_id)
                path.parent.mkdir(parents=True, exist_ok=True)
                async with aiofiles.open(path, "a", encoding="utf-8") as f:
                    await f.write(turn.model_dump_json() + "\n")

                session.last_activity = max(created_at, session.last_activity)
                await self._save_session(session)
            except (OSError, ValueError) as e:
                logger.error(f"Failed to append turn to {session_id}: {e}", exc_info=True)
                raise StorageError(f"Failed to append turn: {e}") from e

            self._last_turn_at[session_id] = created_at
            self._sessions[session_id] = session
            return turn

    async def _read_turns(self, session_id: str) -> List[Turn]:
        path = self._turns_path(session_id)
        if not path.exists():
            return []
        turns = []
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            async for line in f:
                line = line.strip()
                if line:
                    turns.append(Turn.model_validate_json(line))
        return turns

    async def recent_turns(self, session_id: str, limit: Optional[int] = None) -> List[Turn]:
        if not _SAFE_ID.match(session_id):
            return []
        try:
            turns = await self._read_turns(session_id)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read turns of {session_id}: {e}", exc_info=True)
            raise StorageError(f"Failed to read turns: {e}") from e
        if limit is None:
            return turns
        return turns[-limit:] if limit > 0 else []

    async def touch(self, session_id: str) -> None:
        async with self._locks[session_id]:
            session = await self.get_session(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            session.last_activity = next_timestamp(session.last_activity)
            try:
                await self._save_session(session)
            except OSError as e:
                raise StorageError(f"Failed to update session: {e}") from e
            self._sessions[session_id] = session
