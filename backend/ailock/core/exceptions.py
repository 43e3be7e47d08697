"""
Error taxonomy for the orchestrator.

Every error carries a stable ``code`` that the REST and WebSocket layers
forward to clients unchanged.
"""

from typing import Optional


class OrchestratorError(Exception):
    """Base class for all orchestrator errors."""

    code = "internal_error"

    def __init__(self, message: str = "", code: Optional[str] = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        if code:
            self.code = code


class InvalidInputError(OrchestratorError):
    """Client-submitted content is empty or malformed."""

    code = "invalid_input"


class SessionNotFoundError(OrchestratorError):
    """Reference to an unknown (or foreign) session identifier."""

    code = "session_not_found"

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class SessionBusyError(OrchestratorError):
    """The session queue is full or the wait for it timed out."""

    code = "session_busy"


class StorageError(OrchestratorError):
    """The session store failed; ordering and durability cannot be honored."""

    code = "storage_error"


class ProviderError(OrchestratorError):
    """Non-recoverable upstream generation failure."""

    code = "provider_error"

    def __init__(self, message: str = "", provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class ProviderUnavailableError(ProviderError):
    """No generation backend is configured."""

    code = "provider_unavailable"


class ProviderUnreachableError(ProviderError):
    """The backend could not be reached before any output was produced."""

    code = "provider_unreachable"


class ProviderTimeoutError(ProviderError):
    """The provider call exceeded its wall-clock limit."""

    code = "provider_timeout"


class IncompleteStreamError(ProviderError):
    """The stream closed before its terminal marker."""

    code = "incomplete_stream"
