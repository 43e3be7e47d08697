"""Transport module - WebSocket connection and room management."""

from .connection_manager import ConnectionManager, Connection

__all__ = ['ConnectionManager', 'Connection']
