"""Storage module - session persistence and user context providers."""

from .interface import SessionStore, user_directory
from .memory_store import InMemorySessionStore
from .local_storage import LocalSessionStore
from .user_context import UserContextProvider, InMemoryUserContextProvider, LocalUserContextProvider


def create_session_store(storage_type: str = "memory", base_dir: str = "./data") -> SessionStore:
    """Create the configured session store."""
    if storage_type == "memory":
        return InMemorySessionStore()
    elif storage_type == "local":
        return LocalSessionStore(base_dir)
    else:
        raise ValueError(f"Unsupported storage type: {storage_type}")


def create_user_context_provider(storage_type: str = "memory", base_dir: str = "./data") -> UserContextProvider:
    if storage_type == "local":
        return LocalUserContextProvider(base_dir)
    return InMemoryUserContextProvider()


__all__ = [
    'SessionStore', 'InMemorySessionStore', 'LocalSessionStore',
    'UserContextProvider', 'InMemoryUserContextProvider', 'LocalUserContextProvider',
    'create_session_store', 'create_user_context_provider', 'user_directory',
]
