"""Conversation session management: persistence, single-flight requests and orchestration."""

from .lifecycle import RequestLifecycleController, RequestState
from .manager import ConversationSessionManager
from .repository import SessionRepository
from .store import SQLiteSessionStore

__all__ = [
    "ConversationSessionManager",
    "RequestLifecycleController",
    "RequestState",
    "SQLiteSessionStore",
    "SessionRepository",
]
