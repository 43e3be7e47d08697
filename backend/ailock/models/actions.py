"""
Action Models - Suggested actions and action execution results.
"""

from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


class SuggestedAction(BaseModel):
    """A recommended next step surfaced to the client."""
    id: str
    label: str
    icon: str
    category: str
    description: str
    parameters: Optional[Dict[str, Any]] = None


class ActionResult(BaseModel):
    """Result of executing a catalog action."""
    action_id: str
    success: bool
    implemented: bool = True
    message: str
    data: Optional[Dict[str, Any]] = None
    follow_up_actions: List[SuggestedAction] = Field(default_factory=list)
    catalog_version: str


class ExecuteActionRequest(BaseModel):
    """Body of the execute-action endpoint."""
    parameters: Dict[str, Any] = Field(default_factory=dict)
    session_id: Optional[str] = None
