"""
TicketFlow Ticket Model

Wire shapes shared with the TicketFlow server.

Core principles:
1. Ticket = Support request moving through OPEN / IN_PROGRESS / CLOSED
2. Server is authoritative for ids and updated_at
3. Client copies are read-only snapshots (frozen models)
4. Wire format is camelCase JSON, attributes are snake_case
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS
# =============================================================================

class Role(str, Enum):
    ADMIN = "ADMIN"
    AGENT = "AGENT"
    EMPLOYEE = "EMPLOYEE"


class TicketStatus(str, Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    CLOSED = "CLOSED"


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class MoveOrigin(str, Enum):
    DRAG = "drag"  # Kanban card dropped on a column
    FORM = "form"  # Status picked in an edit/resolution form


# =============================================================================
# BASE
# =============================================================================

class WireModel(BaseModel):
    """Snapshot received from the server. Immutable once parsed."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class PayloadModel(BaseModel):
    """Body sent to the server."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict:
        # Only explicitly set fields travel, so None can mean "clear"
        return self.model_dump(by_alias=True, mode="json", exclude_unset=True)


# =============================================================================
# CORE MODELS
# =============================================================================

class User(WireModel):
    """
    A directory entry. The authenticated one doubles as the session identity.

    role is optional on the wire; a user without one gets no capabilities.
    """
    id: int
    name: str
    email: str
    role: Optional[Role] = None
    profile_image_url: Optional[str] = None


class Ticket(WireModel):
    """
    The core ticket entity.

    created_by / assigned_to are denormalized snapshots the server may embed.
    """
    id: int
    title: str
    description: str = ""
    image_url: Optional[str] = None
    status: TicketStatus = TicketStatus.OPEN
    priority: Priority = Priority.MEDIUM

    created_at: datetime
    updated_at: datetime

    created_by_id: int
    assigned_to_id: Optional[int] = None

    created_by: Optional[User] = None
    assigned_to: Optional[User] = None

    @property
    def change_key(self) -> tuple:
        """What a poll compares to decide whether a ticket changed remotely."""
        return (self.id, self.updated_at, self.status)


class Comment(WireModel):
    """Append-only note on a ticket."""
    id: int
    ticket_id: int
    author_id: int
    content: str
    image_url: Optional[str] = None
    created_at: datetime
    author: Optional[User] = None


class StatusSummary(WireModel):
    """Per-status ticket counters."""
    open: int = 0
    in_progress: int = 0
    closed: int = 0

    @property
    def total(self) -> int:
        return self.open + self.in_progress + self.closed


class MoveIntent(WireModel):
    """A request to move a ticket to another status, independent of input device."""
    ticket_id: int
    target_status: TicketStatus
    origin: MoveOrigin = MoveOrigin.DRAG


# =============================================================================
# REQUEST PAYLOADS
# =============================================================================

class AuthResponse(WireModel):
    token: str
    user: User


class TicketInput(PayloadModel):
    """Body for ticket creation."""
    title: str
    description: str
    image_url: Optional[str] = None
    assigned_to_id: Optional[int] = None
    status: Optional[TicketStatus] = None
    priority: Optional[Priority] = None


class TicketUpdate(PayloadModel):
    """
    Partial ticket update.

    Set assigned_to_id=None explicitly to clear the assignee; leaving it
    unset keeps the current one.
    """
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    status: Optional[TicketStatus] = None
    priority: Optional[Priority] = None
    assigned_to_id: Optional[int] = None


class CommentInput(PayloadModel):
    content: str
    image_url: Optional[str] = None


class ProfileUpdate(PayloadModel):
    name: Optional[str] = None
    profile_image_url: Optional[str] = None


class RegisterInput(PayloadModel):
    name: str
    email: str
    password: str
    role: Optional[Role] = None


class TicketFormValues(PayloadModel):
    """What the create/edit form submits."""
    title: str
    description: str
    image_url: Optional[str] = None
    status: TicketStatus = TicketStatus.OPEN
    priority: Priority = Priority.MEDIUM
    assigned_to_id: Optional[int] = None


class KanbanCard(BaseModel):
    """A ticket as shown on the board, with what the viewer may do to it."""
    ticket: Ticket
    can_manage: bool = False
    can_drag: bool = False


class KanbanBoard(BaseModel):
    """Filtered tickets grouped by status column."""
    open: List[KanbanCard] = Field(default_factory=list)
    in_progress: List[KanbanCard] = Field(default_factory=list)
    closed: List[KanbanCard] = Field(default_factory=list)

    def column(self, status: TicketStatus) -> List[KanbanCard]:
        return {
            TicketStatus.OPEN: self.open,
            TicketStatus.IN_PROGRESS: self.in_progress,
            TicketStatus.CLOSED: self.closed,
        }[status]
