"""
TicketFlow Session Context

Who is signed in, and what they may do to a given ticket.

Rules:
1. ADMIN manages and drags everything
2. AGENT manages and drags tickets assigned to them
3. EMPLOYEE manages tickets they created, never drags
4. No identity -> no capability (fail closed)

Role rules live in tables keyed by Role. Every Role member must have an
entry, checked at import, so a new role cannot silently fall through.
"""

import logging
from typing import Callable, Dict, Optional

from ..errors import NotAuthenticated, TicketflowError
from ..models.ticket import Role, Ticket, User

logger = logging.getLogger(__name__)


class AuthorizationError(TicketflowError):
    """Raised when an action violates a capability rule."""
    pass


Rule = Callable[[User, Ticket], bool]


def _is_creator(identity: User, ticket: Ticket) -> bool:
    return ticket.created_by_id == identity.id


def _is_assignee(identity: User, ticket: Ticket) -> bool:
    return ticket.assigned_to_id is not None and ticket.assigned_to_id == identity.id


def _always(identity: User, ticket: Ticket) -> bool:
    return True


def _never(identity: User, ticket: Ticket) -> bool:
    return False


MANAGE_RULES: Dict[Role, Rule] = {
    Role.ADMIN: _always,
    Role.AGENT: _is_assignee,
    Role.EMPLOYEE: _is_creator,
}

DRAG_RULES: Dict[Role, Rule] = {
    Role.ADMIN: _always,
    Role.AGENT: _is_assignee,
    Role.EMPLOYEE: _never,
}

# Which tickets a role sees at all. Also used by the visibility scoper.
SCOPE_RULES: Dict[Role, Rule] = {
    Role.ADMIN: _always,
    Role.AGENT: _is_assignee,
    Role.EMPLOYEE: _is_creator,
}

# EMPLOYEE may edit their ticket's fields but not its status
STATUS_EDIT_ROLES = frozenset({Role.ADMIN, Role.AGENT})


def _check_exhaustive(table: Dict[Role, Rule], name: str) -> None:
    missing = set(Role) - set(table)
    if missing:
        raise RuntimeError(
            f"{name} has no rule for roles: {sorted(r.value for r in missing)}"
        )


for _table, _name in (
    (MANAGE_RULES, "MANAGE_RULES"),
    (DRAG_RULES, "DRAG_RULES"),
    (SCOPE_RULES, "SCOPE_RULES"),
):
    _check_exhaustive(_table, _name)


def evaluate(table: Dict[Role, Rule], identity: Optional[User], ticket: Ticket) -> bool:
    """Apply a role table; anything without an identity or role is denied."""
    if identity is None or identity.role is None:
        return False
    return table[identity.role](identity, ticket)


class SessionContext:
    """
    Holds the current identity and its bearer credential.

    Mutated only through establish(), update_identity() and clear().
    The credential is handed to every request-layer call by the services;
    nothing else keeps a copy.
    """

    def __init__(self):
        self._identity: Optional[User] = None
        self._credential: Optional[str] = None
        # Bumped on every establish/clear so late responses can tell the
        # session they were issued under is gone
        self.generation = 0

    # =========================================================================
    # State
    # =========================================================================

    @property
    def identity(self) -> Optional[User]:
        return self._identity

    @property
    def credential(self) -> Optional[str]:
        return self._credential

    @property
    def is_active(self) -> bool:
        return self._identity is not None

    def establish(self, identity: User, credential: Optional[str]) -> None:
        """Replace the session wholesale (login, register, bootstrap)."""
        self._identity = identity
        self._credential = credential
        self.generation += 1
        logger.info(f"Session established for user {identity.id} ({identity.role})")

    def update_identity(self, identity: User) -> None:
        """Swap in a refreshed copy of the signed-in user (own profile edit)."""
        if self._identity is None or identity.id != self._identity.id:
            raise AuthorizationError("Can only refresh the signed-in user's own profile.")
        self._identity = identity

    def clear(self) -> None:
        if self._identity is not None:
            logger.info(f"Session cleared for user {self._identity.id}")
        self._identity = None
        self._credential = None
        self.generation += 1

    # =========================================================================
    # Capabilities
    # =========================================================================

    def _has_role(self, role: Role) -> bool:
        return self._identity is not None and self._identity.role == role

    @property
    def is_admin(self) -> bool:
        return self._has_role(Role.ADMIN)

    @property
    def is_agent(self) -> bool:
        return self._has_role(Role.AGENT)

    @property
    def is_employee(self) -> bool:
        return self._has_role(Role.EMPLOYEE)

    def can_manage(self, ticket: Ticket) -> bool:
        return evaluate(MANAGE_RULES, self._identity, ticket)

    def can_drag(self, ticket: Ticket) -> bool:
        return evaluate(DRAG_RULES, self._identity, ticket)

    def can_comment(self, ticket: Ticket) -> bool:
        return self.can_manage(ticket)

    def can_edit_status(self, ticket: Ticket) -> bool:
        return (
            self.can_manage(ticket)
            and self._identity.role in STATUS_EDIT_ROLES
        )

    def require_identity(self) -> User:
        if self._identity is None:
            raise NotAuthenticated("Sign in first.")
        return self._identity
