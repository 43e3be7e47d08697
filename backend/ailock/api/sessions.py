"""
Session API endpoints - Start, inspect and message sessions over REST.

Submitting a message here blocks until the generation resolves; its events
still fan out to any WebSocket connections joined to the session.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query

from ..actions import CATALOG_VERSION
from ..models import (
    Principal, Session, SessionList, SessionHistory, StartSessionRequest,
    MessageRequest, GenerationOutcome,
)
from ..orchestrator import SessionOrchestrator
from ..utils.auth import get_current_principal
from .deps import get_orchestrator

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("", response_model=Session)
async def start_session(
    body: StartSessionRequest,
    principal: Principal = Depends(get_current_principal),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """Resume the current session for the mode, or start one."""
    return await orchestrator.resolve_session(principal.user_id, body.mode)


@router.get("", response_model=SessionList)
async def list_sessions(
    principal: Principal = Depends(get_current_principal),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """List the caller's sessions, most recently active first."""
    return SessionList(sessions=await orchestrator.list_sessions(principal.user_id))


@router.get("/{session_id}")
async def get_session(
    session_id: str,
    principal: Principal = Depends(get_current_principal),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    session = await orchestrator.require_session(session_id, principal.user_id)
    return {
        "session": session.model_dump(mode="json"),
        "state": orchestrator.get_state(session_id).value,
    }


@router.get("/{session_id}/messages", response_model=SessionHistory)
async def get_messages(
    session_id: str,
    limit: Optional[int] = Query(None, ge=1, le=500),
    principal: Principal = Depends(get_current_principal),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """
    Get session history.

    Args:
        session_id: Session identifier
        limit: Return only the last N turns
    """
    return await orchestrator.get_history(session_id, limit=limit, user_id=principal.user_id)


@router.get("/{session_id}/actions")
async def get_actions(
    session_id: str,
    principal: Principal = Depends(get_current_principal),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """Current suggested actions for the session."""
    actions = await orchestrator.get_suggested_actions(session_id, user_id=principal.user_id)
    return {
        "session_id": session_id,
        "catalog_version": CATALOG_VERSION,
        "actions": [action.model_dump(exclude_none=True) for action in actions],
    }


@router.post("/{session_id}/messages", response_model=GenerationOutcome)
async def post_message(
    session_id: str,
    body: MessageRequest,
    principal: Principal = Depends(get_current_principal),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """Submit a user message and wait for the assistant reply."""
    return await orchestrator.submit_user_message(session_id, body.content, user_id=principal.user_id)


@router.post("/{session_id}/cancel")
async def cancel_generation(
    session_id: str,
    principal: Principal = Depends(get_current_principal),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    await orchestrator.require_session(session_id, principal.user_id)
    cancelled = await orchestrator.cancel_generation(session_id)
    return {"session_id": session_id, "cancelled": cancelled}
