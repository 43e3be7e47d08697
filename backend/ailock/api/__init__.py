"""API module."""

from .sessions import router as sessions_router
from .actions import router as actions_router
from .health import router as health_router
from .ws import router as ws_router

__all__ = ['sessions_router', 'actions_router', 'health_router', 'ws_router']
