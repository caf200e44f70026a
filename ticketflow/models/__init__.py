"""
TicketFlow Models

Tickets, users, comments and the payloads exchanged with the server.
"""

from .ticket import (
    # Enums
    Role,
    TicketStatus,
    Priority,
    MoveOrigin,

    # Core models
    User,
    Ticket,
    Comment,
    StatusSummary,
    MoveIntent,

    # Payloads
    AuthResponse,
    TicketInput,
    TicketUpdate,
    CommentInput,
    ProfileUpdate,
    RegisterInput,
    TicketFormValues,

    # Board
    KanbanCard,
    KanbanBoard,
)

__all__ = [
    "Role", "TicketStatus", "Priority", "MoveOrigin",
    "User", "Ticket", "Comment", "StatusSummary", "MoveIntent",
    "AuthResponse", "TicketInput", "TicketUpdate", "CommentInput",
    "ProfileUpdate", "RegisterInput", "TicketFormValues",
    "KanbanCard", "KanbanBoard",
]
