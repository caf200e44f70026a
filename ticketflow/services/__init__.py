"""
TicketFlow Services

Core client-side logic: who may see and do what, and how local state
stays in step with the server.
"""

from .session import SessionContext, AuthorizationError
from .store import TicketStore, detect_remote_change
from .visibility import scope, summarize, TicketFilter, ProfileStats, build_board, profile_stats
from .notices import NoticeBoard
from .transitions import StatusTransitionEngine, assignable_agents
from .poller import PollScheduler
from .workspace import Workspace, WorkspaceState

__all__ = [
    # Session (capabilities)
    "SessionContext", "AuthorizationError",

    # Store (reconciliation)
    "TicketStore", "detect_remote_change",

    # Visibility
    "scope", "summarize", "TicketFilter", "ProfileStats", "build_board", "profile_stats",

    # Transitions
    "NoticeBoard", "StatusTransitionEngine", "assignable_agents",

    # Polling
    "PollScheduler",

    # Facade
    "Workspace", "WorkspaceState",
]
