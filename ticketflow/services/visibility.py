"""
TicketFlow Visibility Scoper

Which tickets an identity sees, and the counters and board built on them.

Scope by role:
- ADMIN: everything
- AGENT: tickets assigned to them
- EMPLOYEE: tickets they created
- No identity: nothing

Everything here is pure: same inputs, equal outputs.
"""

from datetime import date
from typing import Iterable, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ..models.ticket import (
    KanbanBoard,
    KanbanCard,
    Priority,
    StatusSummary,
    Ticket,
    TicketStatus,
    User,
)
from .session import DRAG_RULES, MANAGE_RULES, SCOPE_RULES, evaluate

UNASSIGNED = "UNASSIGNED"


def scope(identity: Optional[User], tickets: Iterable[Ticket]) -> List[Ticket]:
    """The subset of tickets the identity may see, in input order."""
    return [t for t in tickets if evaluate(SCOPE_RULES, identity, t)]


def summarize(tickets: Iterable[Ticket]) -> StatusSummary:
    counts = {status: 0 for status in TicketStatus}
    for ticket in tickets:
        counts[ticket.status] += 1
    return StatusSummary(
        open=counts[TicketStatus.OPEN],
        in_progress=counts[TicketStatus.IN_PROGRESS],
        closed=counts[TicketStatus.CLOSED],
    )


# =============================================================================
# DASHBOARD FILTERS
# =============================================================================

class TicketFilter(BaseModel):
    """
    Dashboard filter bar.

    None means "ALL" for every criterion. assigned_to also accepts
    UNASSIGNED to match tickets with no assignee.
    """
    search: str = ""
    status: Optional[TicketStatus] = None
    priority: Optional[Priority] = None
    assigned_to: Optional[Union[int, str]] = None
    created_by: Optional[int] = None
    created_from: Optional[date] = None
    closed_to: Optional[date] = None

    @field_validator("assigned_to", mode="before")
    @classmethod
    def _coerce_assignee(cls, value):
        if isinstance(value, str):
            if value.upper() in ("", "ALL"):
                return None
            if value.isdigit():
                return int(value)
            if value.upper() == UNASSIGNED:
                return UNASSIGNED
            raise ValueError(f"assigned_to must be a user id, ALL or {UNASSIGNED}")
        return value

    def _searchable(self, ticket: Ticket) -> str:
        parts = [
            ticket.title,
            ticket.description,
            str(ticket.id),
            ticket.created_by.name if ticket.created_by else "",
            ticket.assigned_to.name if ticket.assigned_to else "",
        ]
        return " ".join(parts).lower()

    def matches(self, ticket: Ticket) -> bool:
        term = self.search.strip().lower()
        if term and term not in self._searchable(ticket):
            return False
        if self.status is not None and ticket.status != self.status:
            return False
        if self.priority is not None and ticket.priority != self.priority:
            return False

        if self.assigned_to == UNASSIGNED:
            if ticket.assigned_to_id is not None:
                return False
        elif self.assigned_to is not None and ticket.assigned_to_id != self.assigned_to:
            return False

        if self.created_by is not None and ticket.created_by_id != self.created_by:
            return False
        if self.created_from is not None and ticket.created_at.date() < self.created_from:
            return False
        if self.closed_to is not None:
            # Only closed tickets have a close date; updated_at stands in for it
            if ticket.status != TicketStatus.CLOSED:
                return False
            if ticket.updated_at.date() > self.closed_to:
                return False
        return True

    def apply(self, tickets: Iterable[Ticket]) -> List[Ticket]:
        return [t for t in tickets if self.matches(t)]


def build_board(identity: Optional[User], tickets: Iterable[Ticket]) -> KanbanBoard:
    """Group already-scoped tickets into status columns with per-card rights."""
    board = KanbanBoard()
    for ticket in tickets:
        board.column(ticket.status).append(KanbanCard(
            ticket=ticket,
            can_manage=evaluate(MANAGE_RULES, identity, ticket),
            can_drag=evaluate(DRAG_RULES, identity, ticket),
        ))
    return board


# =============================================================================
# PROFILE
# =============================================================================

class ProfileStats(BaseModel):
    """Personal counters shown on the profile page."""
    created_summary: StatusSummary = Field(default_factory=StatusSummary)
    assigned_summary: StatusSummary = Field(default_factory=StatusSummary)
    solved: List[Ticket] = Field(default_factory=list)
    open_assigned: List[Ticket] = Field(default_factory=list)


def profile_stats(identity: Optional[User], tickets: Iterable[Ticket]) -> ProfileStats:
    if identity is None:
        return ProfileStats()
    tickets = list(tickets)
    created = [t for t in tickets if t.created_by_id == identity.id]
    assigned = [t for t in tickets if t.assigned_to_id == identity.id]
    return ProfileStats(
        created_summary=summarize(created),
        assigned_summary=summarize(assigned),
        solved=[t for t in assigned if t.status == TicketStatus.CLOSED],
        open_assigned=[t for t in assigned if t.status != TicketStatus.CLOSED],
    )
