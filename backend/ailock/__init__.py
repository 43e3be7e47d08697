"""Ailock Orchestrator - real-time conversational session orchestration."""

__version__ = "1.0.0"
