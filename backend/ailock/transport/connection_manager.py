"""
WebSocket Connection Manager - Session rooms and event fan-out.

Connections join session rooms; events for a session go to every joined
connection in emission order. A connection whose send fails is dropped from
every room; generation itself is unaffected.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Set, Optional, Any

from fastapi import WebSocket

from ..models.events import Event
from ..models.user import Principal
from ..orchestrator import EventSink

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """One accepted WebSocket and what it has joined."""
    websocket: WebSocket
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    principal: Optional[Principal] = None
    sessions: Set[str] = field(default_factory=set)
    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def authenticated(self) -> bool:
        return self.principal is not None


class ConnectionManager(EventSink):
    """Tracks live connections and the session rooms they joined."""

    def __init__(self):
        self.connections: Dict[str, Connection] = {}
        self.rooms: Dict[str, Set[str]] = {}

    def connect(self, websocket: WebSocket, principal: Optional[Principal] = None) -> Connection:
        connection = Connection(websocket=websocket, principal=principal)
        self.connections[connection.connection_id] = connection
        logger.info(f"WS connect: connection={connection.connection_id}")
        return connection

    def disconnect(self, connection: Connection) -> None:
        for session_id in list(connection.sessions):
            self.leave(connection, session_id)
        self.connections.pop(connection.connection_id, None)
        logger.info(
            f"WS disconnect: connection={connection.connection_id}",
            extra={"extra_fields": {
                "user_id": connection.principal.user_id if connection.principal else None,
            }}
        )

    def join(self, connection: Connection, session_id: str) -> None:
        self.rooms.setdefault(session_id, set()).add(connection.connection_id)
        connection.sessions.add(session_id)

    def leave(self, connection: Connection, session_id: str) -> None:
        connection.sessions.discard(session_id)
        members = self.rooms.get(session_id)
        if members is None:
            return
        members.discard(connection.connection_id)
        if not members:
            del self.rooms[session_id]

    def is_listening(self, session_id: str) -> bool:
        return bool(self.rooms.get(session_id))

    async def emit(self, session_id: str, event: Event) -> None:
        """Send an event to every connection joined to the session."""
        members = list(self.rooms.get(session_id, ()))
        payload = event.to_message()
        for connection_id in members:
            connection = self.connections.get(connection_id)
            if connection is not None:
                await self._send(connection, payload)

    async def send_personal(self, connection: Connection, event: Event) -> None:
        await self._send(connection, event.to_message())

    async def _send(self, connection: Connection, payload: Dict[str, Any]) -> None:
        try:
            async with connection.send_lock:
                await connection.websocket.send_text(json.dumps(payload))
        except Exception as e:
            # The socket is gone; stop routing to it
            logger.warning(
                f"WS send failed, dropping connection {connection.connection_id}: {e}",
                extra={"extra_fields": {"event_type": payload.get("type")}}
            )
            self.disconnect(connection)
