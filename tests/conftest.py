"""
Shared pytest fixtures.

Provides an in-memory stand-in for the TicketFlow server, a fake clock for
simulated time, and factories for users and tickets.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from ticketflow.client import RequestError
from ticketflow.models import (
    AuthResponse,
    Comment,
    Priority,
    Role,
    Ticket,
    TicketStatus,
    User,
)
from ticketflow.services import Workspace

BASE_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


# ============================================================================
# FACTORIES
# ============================================================================


def make_user(user_id: int, role: Optional[Role] = Role.EMPLOYEE, name: Optional[str] = None) -> User:
    return User(
        id=user_id,
        name=name or f"User {user_id}",
        email=f"user{user_id}@corp.test",
        role=role,
    )


def make_ticket(
    ticket_id: int,
    created_by_id: int = 1,
    assigned_to_id: Optional[int] = None,
    status: TicketStatus = TicketStatus.OPEN,
    priority: Priority = Priority.MEDIUM,
    updated_offset: int = 0,
    **extra,
) -> Ticket:
    return Ticket(
        id=ticket_id,
        title=extra.pop("title", f"Ticket {ticket_id}"),
        description=extra.pop("description", f"Description {ticket_id}"),
        status=status,
        priority=priority,
        created_at=extra.pop("created_at", BASE_TIME),
        updated_at=BASE_TIME + timedelta(minutes=updated_offset),
        created_by_id=created_by_id,
        assigned_to_id=assigned_to_id,
        **extra,
    )


# ============================================================================
# SIMULATED TIME
# ============================================================================


class FakeClock:
    """Drop-in for asyncio.sleep where time only moves when advance() is called."""

    def __init__(self):
        self.now = 0.0
        self._waiters = []

    async def sleep(self, delay: float) -> None:
        future = asyncio.get_running_loop().create_future()
        self._waiters.append((self.now + delay, future))
        await future

    @property
    def pending(self) -> int:
        return sum(1 for _, f in self._waiters if not f.done())

    async def advance(self, seconds: float) -> None:
        """Move time forward and let every woken task run to its next await."""
        await settle()
        self.now += seconds
        still_waiting = []
        for deadline, future in self._waiters:
            if future.done():
                continue
            if deadline <= self.now:
                future.set_result(None)
            else:
                still_waiting.append((deadline, future))
        self._waiters = still_waiting
        await settle()


async def settle(rounds: int = 20) -> None:
    """Yield to the loop enough times for chained callbacks to finish."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ============================================================================
# FAKE SERVER
# ============================================================================


class FakeTicketApi:
    """
    In-memory request layer with the same coroutine surface as
    TicketflowClient.

    - failures[name] = exc makes that call raise exc
    - gates[name] = asyncio.Event makes that call wait until the event is set
    - calls records every method invoked, in order
    """

    def __init__(self, users: Optional[List[User]] = None, tickets: Optional[List[Ticket]] = None):
        self.users: Dict[int, User] = {u.id: u for u in (users or [])}
        self.tickets: List[Ticket] = list(tickets or [])
        self.comments: Dict[int, List[Comment]] = {}
        self.tokens: Dict[str, int] = {}
        self.passwords: Dict[str, str] = {}
        self.calls: List[str] = []
        self.failures: Dict[str, Exception] = {}
        self.gates: Dict[str, asyncio.Event] = {}
        self._clock = BASE_TIME + timedelta(days=1)
        self._next_id = 1000

    def issue_token(self, user_id: int) -> str:
        token = f"token-{user_id}"
        self.tokens[token] = user_id
        return token

    def _now(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    async def _enter(self, name: str, token: Optional[str] = None, auth: bool = True) -> None:
        self.calls.append(name)
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        if name in self.failures:
            raise self.failures[name]
        if auth and token not in self.tokens:
            raise RequestError("Unauthorized", status_code=401)

    def _find(self, ticket_id: int) -> Ticket:
        for ticket in self.tickets:
            if ticket.id == ticket_id:
                return ticket
        raise RequestError("Ticket not found", status_code=404)

    # Auth ---------------------------------------------------------------

    async def login(self, email: str, password: str) -> AuthResponse:
        await self._enter("login", auth=False)
        for user in self.users.values():
            if user.email == email and self.passwords.get(email, "secret") == password:
                return AuthResponse(token=self.issue_token(user.id), user=user)
        raise RequestError("Invalid credentials", status_code=401)

    async def register(self, name, email, password, role=None) -> AuthResponse:
        await self._enter("register", auth=False)
        user = User(id=self._new_id(), name=name, email=email, role=role or Role.EMPLOYEE)
        self.users[user.id] = user
        self.passwords[email] = password
        return AuthResponse(token=self.issue_token(user.id), user=user)

    async def me(self, token=None) -> User:
        await self._enter("me", token)
        return self.users[self.tokens[token]]

    # Users --------------------------------------------------------------

    async def get_users(self, token=None) -> List[User]:
        await self._enter("get_users", token)
        return list(self.users.values())

    async def update_my_profile(self, partial, token=None) -> User:
        await self._enter("update_my_profile", token)
        user = self.users[self.tokens[token]]
        updated = user.model_copy(update=partial.model_dump(exclude_unset=True))
        self.users[user.id] = updated
        return updated

    async def create_user(self, payload, token=None) -> User:
        await self._enter("create_user", token)
        user = User(id=self._new_id(), name=payload.name, email=payload.email,
                    role=payload.role or Role.EMPLOYEE)
        self.users[user.id] = user
        return user

    # Tickets ------------------------------------------------------------

    async def get_tickets(self, token=None) -> List[Ticket]:
        # Snapshot taken when the request arrives, even if the answer is held
        snapshot = list(self.tickets)
        await self._enter("get_tickets", token)
        return snapshot

    async def get_ticket_by_id(self, ticket_id, token=None) -> Ticket:
        await self._enter("get_ticket_by_id", token)
        return self._find(ticket_id)

    async def create_ticket(self, payload, token=None) -> Ticket:
        await self._enter("create_ticket", token)
        now = self._now()
        fields = payload.model_dump(exclude_unset=True)
        ticket = Ticket(
            id=self._new_id(),
            title=fields["title"],
            description=fields["description"],
            image_url=fields.get("image_url"),
            status=fields.get("status") or TicketStatus.OPEN,
            priority=fields.get("priority") or Priority.MEDIUM,
            created_at=now,
            updated_at=now,
            created_by_id=self.tokens[token],
            assigned_to_id=fields.get("assigned_to_id"),
        )
        self.tickets.insert(0, ticket)
        return ticket

    async def update_ticket(self, ticket_id, partial, token=None) -> Ticket:
        await self._enter("update_ticket", token)
        current = self._find(ticket_id)
        changes = partial.model_dump(exclude_unset=True)
        changes["updated_at"] = self._now()
        updated = current.model_copy(update=changes)
        self.tickets = [updated if t.id == ticket_id else t for t in self.tickets]
        return updated

    async def delete_ticket(self, ticket_id, token=None) -> None:
        await self._enter("delete_ticket", token)
        self._find(ticket_id)
        self.tickets = [t for t in self.tickets if t.id != ticket_id]

    # Comments -----------------------------------------------------------

    async def get_ticket_comments(self, ticket_id, token=None) -> List[Comment]:
        await self._enter("get_ticket_comments", token)
        return list(self.comments.get(ticket_id, []))

    async def create_ticket_comment(self, ticket_id, payload, token=None) -> Comment:
        await self._enter("create_ticket_comment", token)
        comment = Comment(
            id=self._new_id(),
            ticket_id=ticket_id,
            author_id=self.tokens[token],
            content=payload.content,
            image_url=payload.image_url,
            created_at=self._now(),
        )
        self.comments.setdefault(ticket_id, []).append(comment)
        return comment

    def mutating_calls(self) -> List[str]:
        return [c for c in self.calls if c in ("update_ticket", "create_ticket", "delete_ticket")]


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def admin() -> User:
    return make_user(1, Role.ADMIN, "Ada Admin")


@pytest.fixture
def agent() -> User:
    return make_user(3, Role.AGENT, "Alan Agent")


@pytest.fixture
def employee() -> User:
    return make_user(7, Role.EMPLOYEE, "Emma Employee")


@pytest.fixture
def other_employee() -> User:
    return make_user(9, Role.EMPLOYEE, "Otto Other")


@pytest.fixture
def seed_tickets() -> List[Ticket]:
    """Newest first, as the server lists them."""
    return [
        make_ticket(5, created_by_id=7, assigned_to_id=3, status=TicketStatus.OPEN),
        make_ticket(4, created_by_id=9, assigned_to_id=3, status=TicketStatus.IN_PROGRESS),
        make_ticket(3, created_by_id=9, assigned_to_id=None, status=TicketStatus.OPEN),
        make_ticket(2, created_by_id=7, assigned_to_id=None, status=TicketStatus.CLOSED),
        make_ticket(1, created_by_id=1, assigned_to_id=3, status=TicketStatus.CLOSED),
    ]


@pytest.fixture
def fake_api(admin, agent, employee, other_employee, seed_tickets) -> FakeTicketApi:
    return FakeTicketApi(users=[admin, agent, employee, other_employee], tickets=seed_tickets)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def workspace(fake_api, clock) -> Workspace:
    return Workspace(fake_api, poll_interval=7.0, notice_ttl=2.5, sleep=clock.sleep)
