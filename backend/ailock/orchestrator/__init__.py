"""Orchestrator module - per-session generation coordination."""

from .session_orchestrator import SessionOrchestrator, EventSink, NullEventSink

__all__ = ['SessionOrchestrator', 'EventSink', 'NullEventSink']
