"""
Session Orchestrator - Single coordination point per active session.

Guarantees at most one in-flight generation per session, strict turn append
order, and exactly one terminal event per generation. Each session owns an
``asyncio.Lock`` (the exclusivity token); queued submissions wait on it in
FIFO order.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Tuple

from ..actions import ActionEngine
from ..core.exceptions import (
    InvalidInputError, SessionNotFoundError, SessionBusyError, StorageError, ProviderError,
)
from ..core.logging_config import session_logger
from ..llm import ProviderGateway, GenerationRequest, LLMMessage, Chunk
from ..models.actions import SuggestedAction
from ..models.events import (
    Event, GenerationStartedEvent, ChunkEvent, GenerationCompleteEvent,
    GenerationFailedEvent, GenerationCancelledEvent,
)
from ..models.session import (
    Mode, Role, GenerationState, Session, SessionHistory, GenerationOutcome,
)
from ..models.user import UserContext
from ..storage import SessionStore, UserContextProvider

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_MESSAGE = (
    "I apologize, but I'm experiencing some technical difficulties right now. "
    "Please try again in a moment."
)


class EventSink(ABC):
    """Where session-scoped events go. Implemented by the transport."""

    @abstractmethod
    async def emit(self, session_id: str, event: Event) -> None:
        pass

    @abstractmethod
    def is_listening(self, session_id: str) -> bool:
        """True while at least one connection is joined to the session."""
        pass


class NullEventSink(EventSink):
    """Drops every event; used when nothing is attached."""

    async def emit(self, session_id: str, event: Event) -> None:
        return None

    def is_listening(self, session_id: str) -> bool:
        return False


@dataclass
class _Generation:
    """One owned generation and its delivery state."""
    session_id: str
    generation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    delivered: int = 0
    cancelled: bool = False
    released: bool = False


@dataclass
class _SessionSlot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    occupancy: int = 0
    current: Optional[_Generation] = None


@dataclass
class _ResolveGuard:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class SessionOrchestrator:
    """Coordinates store, gateway, action engine and transport for sessions."""

    def __init__(
        self,
        store: SessionStore,
        gateway: ProviderGateway,
        engine: ActionEngine,
        user_context: UserContextProvider,
        sink: Optional[EventSink] = None,
        history_limit: int = 10,
        queue_depth: int = 1,
        queue_timeout: float = 120.0,
        retry_attempts: int = 0,
        fallback_message: str = DEFAULT_FALLBACK_MESSAGE,
        action_cache_size: int = 1024,
    ):
        self.store = store
        self.gateway = gateway
        self.engine = engine
        self.user_context = user_context
        self.sink = sink or NullEventSink()
        self.history_limit = history_limit
        self.queue_depth = queue_depth
        self.queue_timeout = queue_timeout
        self.retry_attempts = retry_attempts
        self.fallback_message = fallback_message

        self._slots: Dict[str, _SessionSlot] = {}
        self._resolve_guards: Dict[Tuple[str, Mode], _ResolveGuard] = {}
        # Suggestions of the last completed turn, least recently used first
        self._actions: "OrderedDict[str, List[SuggestedAction]]" = OrderedDict()
        self.action_cache_size = action_cache_size

    # ---- Sessions ----

    async def resolve_session(self, user_id: str, mode) -> Session:
        """
        Return the most recently active session for (user_id, mode),
        creating one if none exists.
        """
        try:
            mode = Mode(mode)
        except ValueError as e:
            raise InvalidInputError(f"Unknown mode: {mode}") from e

        key = (user_id, mode)
        guard = self._resolve_guards.setdefault(key, _ResolveGuard())
        guard.users += 1
        try:
            async with guard.lock:
                session = await self.store.latest_session(user_id, mode)
                if session is not None:
                    return session
                session = await self.store.create_session(user_id, mode)
        finally:
            guard.users -= 1
            if guard.users == 0:
                del self._resolve_guards[key]

        logger.info(
            f"Session created: {session.session_id}",
            extra={"extra_fields": {
                "session_id": session.session_id,
                "user_id": user_id,
                "mode": mode.value,
            }}
        )
        return session

    async def require_session(self, session_id: str, user_id: Optional[str] = None) -> Session:
        """Load a session; foreign sessions are reported as not found."""
        session = await self.store.get_session(session_id)
        if session is None or (user_id is not None and session.user_id != user_id):
            raise SessionNotFoundError(session_id)
        return session

    async def list_sessions(self, user_id: str) -> List[Session]:
        return await self.store.list_sessions(user_id)

    async def get_history(self, session_id: str, limit: Optional[int] = None,
                          user_id: Optional[str] = None) -> SessionHistory:
        session = await self.require_session(session_id, user_id)
        turns = await self.store.recent_turns(session_id, limit)
        return SessionHistory(session=session, turns=turns)

    async def get_suggested_actions(self, session_id: str,
                                    user_id: Optional[str] = None) -> List[SuggestedAction]:
        """Suggestions from the last completed turn, recomputed if not cached."""
        session = await self.require_session(session_id, user_id)
        cached = self._actions.get(session_id)
        if cached is not None:
            self._actions.move_to_end(session_id)
            return list(cached)
        turns = await self.store.recent_turns(session_id, 5)
        context = await self._load_user_context(session)
        actions = self.engine.suggest(session.mode, turns, context.location)
        self._cache_actions(session_id, actions)
        return list(actions)

    def _cache_actions(self, session_id: str, actions: List[SuggestedAction]) -> None:
        self._actions[session_id] = actions
        self._actions.move_to_end(session_id)
        while len(self._actions) > self.action_cache_size:
            self._actions.popitem(last=False)

    def get_state(self, session_id: str) -> GenerationState:
        slot = self._slots.get(session_id)
        if slot is not None and slot.current is not None:
            return GenerationState.GENERATING
        return GenerationState.IDLE

    # ---- Generation ----

    async def submit_user_message(self, session_id: str, text: str,
                                  user_id: Optional[str] = None) -> GenerationOutcome:
        """
        Append a user turn and generate the reply.

        Waits behind any in-flight generation for the same session and
        returns once the terminal event has been emitted.

        Raises:
            InvalidInputError: empty or whitespace-only text
            SessionNotFoundError: unknown (or foreign) session
            SessionBusyError: queue full, or the wait timed out
            StorageError: persisting a turn failed
        """
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError("Message content must not be empty")
        session = await self.require_session(session_id, user_id)

        generation = await self._acquire(session_id)
        try:
            await self.store.append_turn(session_id, Role.USER, text)
            return await self._generate(session, generation)
        finally:
            self._release(generation)

    async def run_generation(self, session_id: str) -> GenerationOutcome:
        """Generate an assistant reply to the session's current history."""
        session = await self.require_session(session_id)
        generation = await self._acquire(session_id)
        try:
            return await self._generate(session, generation)
        finally:
            self._release(generation)

    async def cancel_generation(self, session_id: str) -> bool:
        """
        Release the session's token immediately.

        The in-flight result is still persisted when it arrives, flagged as
        discarded, and its remaining events are suppressed.
        """
        slot = self._slots.get(session_id)
        if slot is None or slot.current is None:
            return False

        generation = slot.current
        generation.cancelled = True
        self._release(generation)
        logger.info(
            f"Generation cancelled: {session_id}",
            extra={"extra_fields": {
                "session_id": session_id,
                "generation_id": generation.generation_id,
                "chunks_delivered": generation.delivered,
            }}
        )
        await self.sink.emit(session_id, GenerationCancelledEvent(session_id=session_id, cancelled=True))
        return True

    async def _acquire(self, session_id: str) -> _Generation:
        slot = self._slots.setdefault(session_id, _SessionSlot())
        if slot.occupancy >= 1 + self.queue_depth:
            raise SessionBusyError(f"Session {session_id} is busy, try again shortly")

        slot.occupancy += 1
        acquired = False
        try:
            await asyncio.wait_for(slot.lock.acquire(), timeout=self.queue_timeout)
            acquired = True
        except asyncio.TimeoutError as e:
            raise SessionBusyError(f"Timed out waiting for session {session_id}") from e
        finally:
            if not acquired:
                slot.occupancy -= 1

        generation = _Generation(session_id=session_id)
        slot.current = generation
        return generation

    def _release(self, generation: _Generation) -> None:
        if generation.released:
            return
        generation.released = True

        slot = self._slots[generation.session_id]
        slot.occupancy -= 1
        if slot.current is generation:
            slot.current = None
        slot.lock.release()
        if slot.occupancy == 0 and not slot.lock.locked():
            del self._slots[generation.session_id]

    async def _load_user_context(self, session: Session) -> UserContext:
        """User context for prompts; without location if the provider fails."""
        try:
            return await self.user_context.get_context(session.user_id)
        except StorageError:
            raise
        except Exception as e:
            logger.warning(
                f"User context unavailable, continuing without location: {e}",
                extra={"extra_fields": {"session_id": session.session_id, "user_id": session.user_id}},
            )
            return UserContext(user_id=session.user_id)

    async def _emit(self, generation: _Generation, event: Event) -> None:
        if generation.cancelled:
            return
        await self.sink.emit(generation.session_id, event)

    async def _generate(self, session: Session, generation: _Generation) -> GenerationOutcome:
        session_id = session.session_id
        log = session_logger(logger, session_id, session.user_id)

        history = await self.store.recent_turns(session_id, self.history_limit)
        user_context = await self._load_user_context(session)
        request = GenerationRequest(
            mode=session.mode,
            history=[LLMMessage.text(turn.role.value, turn.content) for turn in history],
            user_context=user_context,
            session_id=session_id,
        )

        await self._emit(generation, GenerationStartedEvent(session_id=session_id))

        async def on_chunk(chunk: Chunk) -> None:
            if not generation.cancelled and self.sink.is_listening(session_id):
                await self.sink.emit(session_id, ChunkEvent(session_id=session_id, text=chunk.text))
            generation.delivered += 1

        log.info(f"Generation started: mode={session.mode.value}, history={len(history)} turns")

        result = None
        attempts = 1 + self.retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                result = await self.gateway.generate(request, on_chunk=on_chunk)
                if not result.content:
                    raise ProviderError("Empty response from provider", provider=result.provider_id)
                break
            except ProviderError as e:
                result = None
                log.warning(
                    f"Generation attempt {attempt}/{attempts} failed: {e.code}: {e.message}",
                    extra={"extra_fields": {"chunks_delivered": generation.delivered}},
                )
                if generation.delivered:
                    break

        if result is not None:
            content = result.content
            window = [*history, LLMMessage.text(Role.ASSISTANT.value, content)]
            actions = self.engine.suggest(session.mode, window, user_context.location)
        else:
            content = self.fallback_message
            actions = []

        turn = await self.store.append_turn(session_id, Role.ASSISTANT, content)
        self._cache_actions(session_id, actions)

        if result is not None:
            await self._emit(generation, GenerationCompleteEvent(
                session_id=session_id,
                content=content,
                actions=actions,
                usage=result.usage,
                model=result.model_id,
                provider=result.provider_id,
            ))
            log.info(
                "Generation completed",
                extra={"extra_fields": {
                    "provider": result.provider_id,
                    "model": result.model_id,
                    "chunks_delivered": generation.delivered,
                    "content_length": len(content),
                    "discarded": generation.cancelled,
                }}
            )
        else:
            await self._emit(generation, GenerationFailedEvent(session_id=session_id, content=content))
            log.error("Generation failed, fallback reply persisted")

        return GenerationOutcome(
            session_id=session_id,
            content=content,
            success=result is not None,
            actions=[action.model_dump(exclude_none=True) for action in actions],
            usage=result.usage if result else {},
            model=result.model_id if result else None,
            provider=result.provider_id if result else None,
            turn_id=turn.turn_id,
            discarded=generation.cancelled,
        )
