"""Actions module - contextual action suggestions and execution."""

from .catalog import CATALOG_VERSION, ActionTrigger, TRIGGERS
from .engine import ActionEngine

__all__ = ['CATALOG_VERSION', 'ActionTrigger', 'TRIGGERS', 'ActionEngine']
