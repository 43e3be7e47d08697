"""
WebSocket endpoint - Real-time session protocol.

Frames are JSON objects with a ``type`` field. A connection must
authenticate (``?token=`` or a first ``auth`` frame) before anything else.
User messages run as background tasks so the socket keeps reading (cancel,
ping) while a generation streams.
"""

import asyncio
import json
import logging
from typing import Optional, Dict, Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query

from ..core.exceptions import (
    OrchestratorError, InvalidInputError, SessionBusyError,
)
from ..models.events import (
    AuthenticatedEvent, SessionCreatedEvent, ActionResultEvent, ContextActionsUpdatedEvent,
    GenerationCancelledEvent, MessageRejectedEvent, ErrorEvent, PongEvent,
)
from ..transport import Connection, ConnectionManager
from ..utils.auth import decode_access_token
from .actions import run_action

logger = logging.getLogger(__name__)

router = APIRouter()

UNAUTHORIZED_CLOSE_CODE = 4401


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"WebSocket task failed: {error}", exc_info=error)


class SessionSocket:
    """Protocol handler for one WebSocket connection."""

    def __init__(self, websocket: WebSocket, connection: Connection):
        state = websocket.app.state
        self.websocket = websocket
        self.connection = connection
        self.settings = state.settings
        self.manager: ConnectionManager = state.connection_manager
        self.orchestrator = state.orchestrator
        self.engine = state.action_engine
        self.user_context = state.user_context
        self.tasks = state.background_tasks

    @property
    def user_id(self) -> str:
        return self.connection.principal.user_id

    async def authenticate(self, token: Optional[str]) -> bool:
        principal = decode_access_token(token or "", self.settings.secret_key, self.settings.algorithm)
        if principal is None:
            logger.warning(f"WS authentication failed: connection={self.connection.connection_id}")
            await self.websocket.close(code=UNAUTHORIZED_CLOSE_CODE, reason="Invalid token")
            return False
        self.connection.principal = principal
        await self.manager.send_personal(self.connection, AuthenticatedEvent(
            user_id=principal.user_id, display_name=principal.display_name,
        ))
        return True

    async def handle(self, frame: Dict[str, Any]) -> bool:
        """Dispatch one inbound frame. Returns False once the socket is closed."""
        frame_type = frame.get("type")

        if frame_type == "auth":
            return await self.authenticate(frame.get("token"))

        if not self.connection.authenticated:
            await self.send_error("unauthenticated", "Authenticate first")
            return True

        if frame_type == "ping":
            await self.manager.send_personal(self.connection, PongEvent())
        elif frame_type == "join_session":
            await self._guard(self._join(frame.get("session_id")), frame.get("session_id"))
        elif frame_type == "leave_session":
            self.manager.leave(self.connection, str(frame.get("session_id")))
        elif frame_type == "user_message":
            task = asyncio.create_task(self._guard(self._user_message(frame), frame.get("session_id")))
            self.tasks.add(task)
            task.add_done_callback(self.tasks.discard)
            task.add_done_callback(_log_task_failure)
        elif frame_type == "execute_action":
            await self._guard(self._execute_action(frame), frame.get("session_id"))
        elif frame_type == "cancel_generation":
            await self._guard(self._cancel(frame.get("session_id")), frame.get("session_id"))
        else:
            await self.send_error("unknown_event", f"Unknown event type: {frame_type}")
        return True

    async def _guard(self, operation, session_id: Optional[str]) -> None:
        """Run an operation, turning orchestrator errors into events."""
        try:
            await operation
        except (InvalidInputError, SessionBusyError) as e:
            await self.manager.send_personal(self.connection, MessageRejectedEvent(
                code=e.code, message=e.message, session_id=session_id,
            ))
        except OrchestratorError as e:
            await self.send_error(e.code, e.message, session_id)

    async def send_error(self, code: str, message: str, session_id: Optional[str] = None) -> None:
        await self.manager.send_personal(self.connection, ErrorEvent(
            code=code, message=message, session_id=session_id,
        ))

    async def _join(self, session_id: Optional[str]) -> None:
        if not session_id:
            raise InvalidInputError("session_id is required")
        await self.orchestrator.require_session(session_id, self.user_id)
        self.manager.join(self.connection, session_id)

    async def _user_message(self, frame: Dict[str, Any]) -> None:
        content = frame.get("content")
        if not isinstance(content, str) or not content.strip():
            raise InvalidInputError("Message content must not be empty")

        session_id = frame.get("session_id")
        if session_id:
            await self._join(session_id)
        else:
            mode = frame.get("mode") or self.settings.default_mode
            session = await self.orchestrator.resolve_session(self.user_id, mode)
            session_id = session.session_id
            self.manager.join(self.connection, session_id)
            await self.manager.send_personal(self.connection, SessionCreatedEvent(
                session_id=session_id, mode=session.mode.value,
            ))

        try:
            await self.orchestrator.submit_user_message(session_id, content, user_id=self.user_id)
        except OrchestratorError as e:
            # Report against the resolved session
            if isinstance(e, (InvalidInputError, SessionBusyError)):
                await self.manager.send_personal(self.connection, MessageRejectedEvent(
                    code=e.code, message=e.message, session_id=session_id,
                ))
            else:
                await self.send_error(e.code, e.message, session_id)

    async def _execute_action(self, frame: Dict[str, Any]) -> None:
        action_id = frame.get("action_id")
        if not action_id:
            raise InvalidInputError("action_id is required")
        session_id = frame.get("session_id")

        result = await run_action(
            self.engine, self.orchestrator, self.user_context, self.connection.principal,
            action_id, frame.get("parameters") or {}, session_id,
        )
        await self.manager.send_personal(self.connection, ActionResultEvent(
            action_id=action_id, result=result, session_id=session_id,
        ))
        if result.follow_up_actions:
            await self.manager.send_personal(self.connection, ContextActionsUpdatedEvent(
                actions=result.follow_up_actions, session_id=session_id,
            ))

    async def _cancel(self, session_id: Optional[str]) -> None:
        if not session_id:
            raise InvalidInputError("session_id is required")
        await self.orchestrator.require_session(session_id, self.user_id)
        cancelled = await self.orchestrator.cancel_generation(session_id)
        if not cancelled or session_id not in self.connection.sessions:
            await self.manager.send_personal(self.connection, GenerationCancelledEvent(
                session_id=session_id, cancelled=cancelled,
            ))


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: Optional[str] = Query(None)):
    await websocket.accept()
    manager: ConnectionManager = websocket.app.state.connection_manager
    connection = manager.connect(websocket)
    handler = SessionSocket(websocket, connection)

    try:
        if token is not None and not await handler.authenticate(token):
            return

        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await handler.send_error("invalid_frame", "Frames must be JSON objects")
                continue
            if not isinstance(frame, dict):
                await handler.send_error("invalid_frame", "Frames must be JSON objects")
                continue
            if not await handler.handle(frame):
                return
    except WebSocketDisconnect:
        logger.info(f"WS client disconnected: connection={connection.connection_id}")
    finally:
        # In-flight generations keep running and are persisted
        manager.disconnect(connection)
