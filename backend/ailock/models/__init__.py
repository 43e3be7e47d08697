"""Models module."""

from .session import (
    Mode, Role, GenerationState, Session, Turn, SessionList, SessionHistory,
    StartSessionRequest, MessageRequest, GenerationOutcome,
)
from .user import Principal, UserLocation, UserContext
from .actions import SuggestedAction, ActionResult, ExecuteActionRequest

__all__ = [
    'Mode', 'Role', 'GenerationState', 'Session', 'Turn', 'SessionList', 'SessionHistory',
    'StartSessionRequest', 'MessageRequest', 'GenerationOutcome',
    'Principal', 'UserLocation', 'UserContext',
    'SuggestedAction', 'ActionResult', 'ExecuteActionRequest',
]
