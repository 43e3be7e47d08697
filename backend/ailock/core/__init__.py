"""Core module - error taxonomy and logging setup."""

from .exceptions import (
    OrchestratorError,
    InvalidInputError,
    SessionNotFoundError,
    SessionBusyError,
    StorageError,
    ProviderError,
    ProviderUnavailableError,
    ProviderUnreachableError,
    ProviderTimeoutError,
    IncompleteStreamError,
)

__all__ = [
    'OrchestratorError',
    'InvalidInputError',
    'SessionNotFoundError',
    'SessionBusyError',
    'StorageError',
    'ProviderError',
    'ProviderUnavailableError',
    'ProviderUnreachableError',
    'ProviderTimeoutError',
    'IncompleteStreamError',
]
