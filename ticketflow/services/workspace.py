"""
TicketFlow Workspace

The one object a presentation layer talks to.

It owns the session, store, notice board, transition engine and poller,
and exposes:
- State: scoped tickets, summary, board, notice, error, loading, not_found
- Entry points: login/register/logout, view/edit/delete, move_status,
  create/update ticket, comments, profile

Every entry point catches TicketflowError and turns it into `error`.
Nothing raised by the request layer escapes to the caller.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from ..errors import TicketflowError, TicketNotFound
from ..models.ticket import (
    Comment,
    CommentInput,
    KanbanBoard,
    MoveOrigin,
    ProfileUpdate,
    RegisterInput,
    Role,
    StatusSummary,
    Ticket,
    TicketFormValues,
    TicketStatus,
    User,
)
from ..client import RequestError, TicketApi
from .notices import NoticeBoard, Sleep
from .poller import PollScheduler
from .session import AuthorizationError, SessionContext
from .store import TicketStore
from .transitions import StatusTransitionEngine, assignable_agents
from .visibility import ProfileStats, TicketFilter, build_board, profile_stats, scope, summarize

logger = logging.getLogger(__name__)

REMOTE_CHANGE_NOTICE = "Tickets were updated"
IMAGE_ONLY_COMMENT = "Image update"

TokenSink = Callable[[Optional[str]], None]


class WorkspaceState(BaseModel):
    """Everything the presentation layer renders, in one snapshot."""
    identity: Optional[User] = None
    tickets: List[Ticket] = Field(default_factory=list)
    summary: StatusSummary = Field(default_factory=StatusSummary)
    notice: Optional[str] = None
    error: Optional[str] = None
    loading: bool = False
    not_found: bool = False


class Workspace:
    """
    Client-side ticket state and access control for one user session.

    api is the request layer. token_sink, when given, is told about every
    credential change so the caller can persist or forget it.
    """

    def __init__(
        self,
        api: TicketApi,
        poll_interval: Optional[float] = None,
        notice_ttl: Optional[float] = None,
        sleep: Optional[Sleep] = None,
        token_sink: Optional[TokenSink] = None,
    ):
        self.api = api
        self.session = SessionContext()
        self.store = TicketStore()
        self.notices = NoticeBoard(ttl=notice_ttl, sleep=sleep)
        self.engine = StatusTransitionEngine(api, self.session, self.store, self.notices)
        self.poller = PollScheduler(
            api,
            self.session,
            self.store,
            interval=poll_interval,
            sleep=sleep,
            on_error=self._set_error,
            on_loading=self._set_loading,
        )
        self._token_sink = token_sink or (lambda token: None)
        self._unsubscribe = self.store.subscribe(self._on_remote_change)

        self.error: Optional[str] = None
        self.failure: Optional[TicketflowError] = None
        self.loading = False
        self.not_found = False
        self.comments: Dict[int, List[Comment]] = {}
        self.remote_changes = 0

    # =========================================================================
    # Internal plumbing
    # =========================================================================

    def _set_error(self, message: Optional[str]) -> None:
        self.error = message

    def _record(self, failure: Optional[TicketflowError], message: Optional[str] = None) -> None:
        """Remember the last action's failure; None marks a success."""
        self.failure = failure
        self.error = None if failure is None else (str(failure) or message)

    def _set_loading(self, loading: bool) -> None:
        self.loading = loading

    def _on_remote_change(self, tickets: List[Ticket]) -> None:
        self.remote_changes += 1
        self.notices.post(REMOTE_CHANGE_NOTICE)

    @contextmanager
    def _surface(self, fallback: str):
        """Run a user action, converting any core failure into `error`."""
        try:
            yield
        except TicketNotFound as e:
            self.not_found = True
            self._record(e)
        except TicketflowError as e:
            logger.warning(f"{fallback}: {e}")
            self._record(e, fallback)
        else:
            self._record(None)

    # =========================================================================
    # Presentation state
    # =========================================================================

    @property
    def identity(self) -> Optional[User]:
        return self.session.identity

    @property
    def scoped_tickets(self) -> List[Ticket]:
        return scope(self.session.identity, self.store.current_snapshot())

    @property
    def summary(self) -> StatusSummary:
        return summarize(self.scoped_tickets)

    @property
    def notice(self) -> Optional[str]:
        return self.notices.message

    @property
    def users(self) -> List[User]:
        return self.store.users()

    @property
    def agents(self) -> List[User]:
        return assignable_agents(self.store.users())

    def board(self, ticket_filter: Optional[TicketFilter] = None) -> KanbanBoard:
        tickets = self.scoped_tickets
        if ticket_filter is not None:
            tickets = ticket_filter.apply(tickets)
        return build_board(self.session.identity, tickets)

    def profile(self) -> ProfileStats:
        return profile_stats(self.session.identity, self.store.current_snapshot())

    def display_name(self, user_id: Optional[int]) -> str:
        return self.store.display_name(user_id)

    def state(self) -> WorkspaceState:
        return WorkspaceState(
            identity=self.identity,
            tickets=self.scoped_tickets,
            summary=self.summary,
            notice=self.notice,
            error=self.error,
            loading=self.loading,
            not_found=self.not_found,
        )

    # =========================================================================
    # Session
    # =========================================================================

    async def _start_session(self, user: User, token: Optional[str]) -> None:
        self.session.establish(user, token)
        self._token_sink(token)
        with self._surface("Failed to load data"):
            await self.poller.refresh(quiet=False)
        self.poller.start()

    async def bootstrap(self, token: Optional[str]) -> bool:
        """
        Resume a session from a stored token.

        If the server no longer accepts the token, it is forgotten and the
        workspace stays signed out.
        """
        if not token:
            return False
        try:
            user = await self.api.me(token=token)
        except TicketflowError as e:
            logger.info(f"Stored session rejected: {e}")
            self.session.clear()
            self._token_sink(None)
            return False
        await self._start_session(user, token)
        return True

    async def login(self, email: str, password: str) -> Optional[User]:
        auth = None
        with self._surface("Could not sign in"):
            auth = await self.api.login(email, password)
        if auth is None:
            return None
        await self._end_session()
        await self._start_session(auth.user, auth.token)
        return auth.user

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        role: Optional[Role] = None,
    ) -> Optional[User]:
        auth = None
        with self._surface("Could not register"):
            auth = await self.api.register(name, email, password, role)
        if auth is None:
            return None
        await self._end_session()
        await self._start_session(auth.user, auth.token)
        return auth.user

    async def _end_session(self) -> None:
        await self.poller.stop()
        self.notices.clear()
        self.session.clear()
        self.store.clear()
        self.comments = {}
        self.not_found = False

    async def logout(self) -> None:
        await self._end_session()
        self._record(None)
        self._token_sink(None)

    async def close(self) -> None:
        """Teardown: no timer may fire after this returns."""
        await self.poller.stop()
        self.notices.close()
        self._unsubscribe()

    async def reload(self) -> None:
        """User-triggered loud refresh."""
        with self._surface("Failed to load data"):
            await self.poller.refresh(quiet=False)

    # =========================================================================
    # Tickets
    # =========================================================================

    async def _fetch_one(self, ticket_id: int) -> Optional[Ticket]:
        """Re-fetch one ticket; a 404 means it is gone everywhere."""
        generation = self.session.generation
        try:
            ticket = await self.api.get_ticket_by_id(ticket_id, token=self.session.credential)
        except RequestError as e:
            if e.status_code == 404:
                self.store.remove(ticket_id)
                raise TicketNotFound(ticket_id) from e
            raise
        if generation == self.session.generation:
            self.store.upsert(ticket)
        return ticket

    async def view(self, ticket_id: int) -> Optional[Ticket]:
        """
        Open a ticket's detail view.

        Falls back to the stored copy if the refresh fails; returns None and
        sets not_found when the ticket is gone.
        """
        self.not_found = False
        if self.session.identity is None:
            return None
        ticket = None
        with self._surface("Could not load ticket"):
            ticket = await self._fetch_one(ticket_id)
        if ticket is None and not self.not_found:
            ticket = self.store.get(ticket_id)
            if ticket is None:
                self.not_found = True
        return ticket

    async def edit(self, ticket_id: int) -> Optional[Ticket]:
        """Open the edit form; None if gone or not editable by the viewer."""
        ticket = await self.view(ticket_id)
        if ticket is None:
            return None
        if not self.session.can_manage(ticket):
            self._record(AuthorizationError(f"You are not allowed to edit ticket #{ticket_id}."))
            return None
        return ticket

    def can_edit_status(self, ticket: Ticket) -> bool:
        """Whether the edit form should show the status field."""
        return self.session.can_edit_status(ticket)

    async def delete(self, ticket_id: int) -> bool:
        with self._surface("Could not delete ticket"):
            await self.engine.delete(ticket_id)
            self.comments.pop(ticket_id, None)
            return True
        return False

    async def move_status(
        self,
        ticket_id: int,
        status: TicketStatus,
        via: MoveOrigin = MoveOrigin.DRAG,
    ) -> Optional[Ticket]:
        with self._surface("Could not update status"):
            return await self.engine.move(ticket_id, status, via)
        return None

    async def create_ticket(self, values: TicketFormValues) -> Optional[Ticket]:
        with self._surface("Could not create ticket"):
            return await self.engine.create(values)
        return None

    async def update_ticket(self, ticket_id: int, values: TicketFormValues) -> Optional[Ticket]:
        with self._surface("Could not save ticket"):
            return await self.engine.update(ticket_id, values)
        return None

    # =========================================================================
    # Comments
    # =========================================================================

    async def load_comments(self, ticket_id: int) -> List[Comment]:
        with self._surface("Could not load comments"):
            comments = await self.api.get_ticket_comments(
                ticket_id, token=self.session.credential
            )
            self.comments[ticket_id] = list(comments)
        return self.comments.get(ticket_id, [])

    async def add_comment(
        self,
        ticket_id: int,
        content: str,
        image_url: Optional[str] = None,
    ) -> Optional[Comment]:
        """Post a comment. Blank text with no image is ignored."""
        content = content.strip()
        with self._surface("Could not add comment"):
            if not content and not image_url:
                return None
            ticket = self.store.get(ticket_id)
            if ticket is None:
                raise TicketNotFound(ticket_id)
            if not self.session.can_comment(ticket):
                raise AuthorizationError(f"You cannot comment on ticket #{ticket_id}.")
            created = await self.api.create_ticket_comment(
                ticket_id,
                CommentInput(content=content or IMAGE_ONLY_COMMENT, image_url=image_url),
                token=self.session.credential,
            )
            self.comments.setdefault(ticket_id, []).append(created)
            return created
        return None

    # =========================================================================
    # Users
    # =========================================================================

    async def update_profile(
        self,
        name: Optional[str] = None,
        profile_image_url: Optional[str] = None,
    ) -> Optional[User]:
        """Edit the signed-in user's own name and picture."""
        with self._surface("Could not update profile"):
            identity = self.session.require_identity()
            display_name = (name or "").strip() or identity.name
            updated = await self.api.update_my_profile(
                ProfileUpdate(name=display_name, profile_image_url=profile_image_url),
                token=self.session.credential,
            )
            self.session.update_identity(updated)
            self.store.upsert_user(updated)
            return updated
        return None

    async def create_user(
        self,
        name: str,
        email: str,
        password: str,
        role: Optional[Role] = None,
    ) -> Optional[User]:
        """Admin-only: add someone to the directory."""
        with self._surface("Could not create user"):
            if not self.session.is_admin:
                raise AuthorizationError("Only admins can create users.")
            payload = RegisterInput(name=name.strip(), email=email.strip(), password=password)
            if role is not None:
                payload.role = role
            created = await self.api.create_user(payload, token=self.session.credential)
            self.store.upsert_user(created)
            return created
        return None
