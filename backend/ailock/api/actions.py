"""
Action API endpoints - Catalog listing and action execution.
"""

import logging
from typing import Optional, Dict, Any
from fastapi import APIRouter, Depends

from ..actions import ActionEngine, CATALOG_VERSION
from ..models import Principal, ActionResult, ExecuteActionRequest
from ..models.events import ContextActionsUpdatedEvent
from ..orchestrator import SessionOrchestrator
from ..storage import UserContextProvider
from ..transport import ConnectionManager
from ..utils.auth import get_current_principal
from .deps import get_action_engine, get_orchestrator, get_connection_manager, get_user_context_provider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/actions", tags=["actions"])


async def run_action(
    engine: ActionEngine,
    orchestrator: SessionOrchestrator,
    user_context: UserContextProvider,
    principal: Principal,
    action_id: str,
    parameters: Optional[Dict[str, Any]] = None,
    session_id: Optional[str] = None,
) -> ActionResult:
    """
    Execute an action on behalf of a principal.

    The caller's user context is merged under the client parameters, so
    explicit parameters win.
    """
    if session_id:
        await orchestrator.require_session(session_id, principal.user_id)
    context = await user_context.get_context(principal.user_id, principal)
    merged = {**context.as_parameters(), **(parameters or {})}
    return await engine.execute(action_id, merged)


@router.get("/catalog")
async def get_catalog(engine: ActionEngine = Depends(get_action_engine)):
    """List every catalog action and whether it can be executed."""
    return {"catalog_version": CATALOG_VERSION, "actions": engine.catalog()}


@router.post("/{action_id}", response_model=ActionResult)
async def execute_action(
    action_id: str,
    body: ExecuteActionRequest,
    principal: Principal = Depends(get_current_principal),
    engine: ActionEngine = Depends(get_action_engine),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
    manager: ConnectionManager = Depends(get_connection_manager),
    user_context: UserContextProvider = Depends(get_user_context_provider),
):
    """
    Execute a catalog action.

    Unknown actions are not an error: the result reports
    ``implemented=False``. Follow-up actions are pushed to the session room
    when a session is given.
    """
    result = await run_action(
        engine, orchestrator, user_context, principal,
        action_id, body.parameters, body.session_id,
    )
    if body.session_id and result.follow_up_actions:
        await manager.emit(body.session_id, ContextActionsUpdatedEvent(
            actions=result.follow_up_actions, session_id=body.session_id,
        ))
    return result
