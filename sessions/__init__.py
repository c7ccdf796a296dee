"""
Sessions Package

Conversation state and per-request orchestration.

Components:
- SessionStore: bounded, per-session conversation history
- turn_builder: history + new message -> model message sequence
- Orchestrator: build, generate, commit

Usage:
    from sessions.session_store import SessionStore
    from sessions.orchestrator import Orchestrator

Note: Import directly from submodules to avoid circular import issues.
"""

__all__ = [
    "Orchestrator",
    "SessionStore",
    "Turn",
    "build_messages",
]
