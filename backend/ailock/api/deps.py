"""
API dependencies - Access to the components wired onto ``app.state``.
"""

from fastapi import Request

from ..actions import ActionEngine
from ..orchestrator import SessionOrchestrator
from ..storage import UserContextProvider
from ..transport import ConnectionManager


def get_orchestrator(request: Request) -> SessionOrchestrator:
    return request.app.state.orchestrator


def get_action_engine(request: Request) -> ActionEngine:
    return request.app.state.action_engine


def get_connection_manager(request: Request) -> ConnectionManager:
    return request.app.state.connection_manager


def get_user_context_provider(request: Request) -> UserContextProvider:
    return request.app.state.user_context
