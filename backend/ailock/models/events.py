"""
Transport Events - Outbound WebSocket event shapes.

Every event carries a ``type`` discriminator; session-scoped events also carry
``session_id`` so a client joined to several sessions can route them.
"""

from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, Field

from .actions import SuggestedAction, ActionResult


class Event(BaseModel):
    """Base outbound event."""
    type: str

    def to_message(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class AuthenticatedEvent(Event):
    type: Literal["authenticated"] = "authenticated"
    user_id: str
    display_name: str


class SessionCreatedEvent(Event):
    type: Literal["session_created"] = "session_created"
    session_id: str
    mode: str


class GenerationStartedEvent(Event):
    type: Literal["generation_started"] = "generation_started"
    session_id: str


class ChunkEvent(Event):
    type: Literal["chunk"] = "chunk"
    session_id: str
    text: str


class GenerationCompleteEvent(Event):
    type: Literal["generation_complete"] = "generation_complete"
    session_id: str
    content: str
    actions: List[SuggestedAction] = Field(default_factory=list)
    usage: Dict[str, int] = Field(default_factory=dict)
    model: Optional[str] = None
    provider: Optional[str] = None


class GenerationFailedEvent(Event):
    type: Literal["generation_failed"] = "generation_failed"
    session_id: str
    content: str


class GenerationCancelledEvent(Event):
    type: Literal["generation_cancelled"] = "generation_cancelled"
    session_id: str
    cancelled: bool


class ActionResultEvent(Event):
    type: Literal["action_result"] = "action_result"
    action_id: str
    result: ActionResult
    session_id: Optional[str] = None


class ContextActionsUpdatedEvent(Event):
    type: Literal["context_actions_updated"] = "context_actions_updated"
    actions: List[SuggestedAction]
    session_id: Optional[str] = None


class MessageRejectedEvent(Event):
    type: Literal["message_rejected"] = "message_rejected"
    code: str
    message: str
    session_id: Optional[str] = None


class ErrorEvent(Event):
    type: Literal["error"] = "error"
    code: str
    message: str
    session_id: Optional[str] = None


class PongEvent(Event):
    type: Literal["pong"] = "pong"
