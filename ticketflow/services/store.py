"""
TicketFlow Ticket Store

Single source of truth for tickets and the user directory.

- replace_all(): merge a server snapshot, flag remote changes
- upsert(): apply one ticket the server just returned
- remove(): drop a ticket after a confirmed delete

Local creates and deletes are remembered with the store revision they
happened at, so a poll that was already in flight cannot undo them.

All mutators are synchronous and cannot fail. Whatever fetched their
arguments must have succeeded before they are called.
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional

from ..models.ticket import Ticket, User

logger = logging.getLogger(__name__)

UNKNOWN_USER = "Unknown"

ChangeListener = Callable[[List[Ticket]], None]


def detect_remote_change(current: List[Ticket], incoming: List[Ticket]) -> bool:
    """
    True when incoming differs from current by (id, updated_at, status).

    Differing sizes, an id present on only one side, or a shared id whose
    updated_at or status moved all count as a change.
    """
    if len(current) != len(incoming):
        return True
    current_keys = {t.id: t.change_key for t in current}
    for ticket in incoming:
        if current_keys.get(ticket.id) != ticket.change_key:
            return True
    return False


class TicketStore:
    """
    In-memory ticket collection, newest first.

    Listeners subscribed via subscribe() hear about remote changes found
    by a quiet replace_all().
    """

    def __init__(self):
        self._tickets: List[Ticket] = []
        self._users: Dict[int, User] = {}
        self._user_order: List[int] = []
        self._listeners: List[ChangeListener] = []
        self._revision = 0
        self._local_creates: Dict[int, int] = {}
        self._local_deletes: Dict[int, int] = {}

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a remote-change listener; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit_change(self) -> None:
        snapshot = self.current_snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    # =========================================================================
    # Tickets
    # =========================================================================

    def current_snapshot(self) -> List[Ticket]:
        return list(self._tickets)

    def get(self, ticket_id: int) -> Optional[Ticket]:
        for ticket in self._tickets:
            if ticket.id == ticket_id:
                return ticket
        return None

    def __contains__(self, ticket_id: int) -> bool:
        return self.get(ticket_id) is not None

    def __len__(self) -> int:
        return len(self._tickets)

    @property
    def revision(self) -> int:
        """Counter bumped by every local mutation. Pollers pass it back as `since`."""
        return self._revision

    def replace_all(
        self,
        server_tickets: Iterable[Ticket],
        quiet: bool = True,
        since: Optional[int] = None,
    ) -> bool:
        """
        Adopt a server snapshot. Returns whether the store changed.

        Membership and order follow the server, except for local work the
        snapshot could not have seen. since is the revision read when the
        snapshot was requested; None means the snapshot is current.
        - A held ticket with a newer updated_at than the snapshot's is kept
        - A ticket created locally after since stays, first
        - A ticket deleted locally after since stays gone
        """
        incoming = list(server_tickets)
        if since is None:
            since = self._revision

        local = {t.id: t for t in self._tickets}
        deleted = {i for i, rev in self._local_deletes.items() if rev > since}
        created = {i for i, rev in self._local_creates.items() if rev > since}
        incoming_ids = {t.id for t in incoming}

        merged = [
            t for t in self._tickets
            if t.id in created and t.id not in incoming_ids
        ]
        kept_local = 0
        for ticket in incoming:
            if ticket.id in deleted:
                continue
            held = local.get(ticket.id)
            if held is not None and held.updated_at > ticket.updated_at:
                merged.append(held)
                kept_local += 1
            else:
                merged.append(ticket)

        changed = detect_remote_change(self._tickets, merged)
        self._tickets = merged
        self._local_creates = {i: rev for i, rev in self._local_creates.items() if rev > since}
        self._local_deletes = {i: rev for i, rev in self._local_deletes.items() if rev > since}

        if kept_local:
            logger.debug(f"Kept {kept_local} locally newer tickets over stale snapshot")
        if changed:
            logger.info(f"Remote change detected ({len(merged)} tickets)")
            if quiet:
                self._emit_change()
        return changed

    def upsert(self, ticket: Ticket) -> None:
        """Replace in place if present, otherwise insert first."""
        self._revision += 1
        self._local_deletes.pop(ticket.id, None)
        for index, held in enumerate(self._tickets):
            if held.id == ticket.id:
                self._tickets[index] = ticket
                return
        self._tickets.insert(0, ticket)
        self._local_creates[ticket.id] = self._revision

    def remove(self, ticket_id: int) -> None:
        self._revision += 1
        self._local_creates.pop(ticket_id, None)
        self._local_deletes[ticket_id] = self._revision
        self._tickets = [t for t in self._tickets if t.id != ticket_id]

    def clear(self) -> None:
        self._tickets = []
        self._users = {}
        self._user_order = []
        self._local_creates = {}
        self._local_deletes = {}

    # =========================================================================
    # User directory
    # =========================================================================

    def users(self) -> List[User]:
        return [self._users[user_id] for user_id in self._user_order]

    def get_user(self, user_id: Optional[int]) -> Optional[User]:
        if user_id is None:
            return None
        return self._users.get(user_id)

    def replace_users(self, users: Iterable[User]) -> None:
        users = list(users)
        self._users = {user.id: user for user in users}
        self._user_order = [user.id for user in users]

    def upsert_user(self, user: User) -> None:
        """Patch one directory entry; new users go first."""
        if user.id not in self._users:
            self._user_order.insert(0, user.id)
        self._users[user.id] = user

    def display_name(self, user_id: Optional[int]) -> str:
        user = self.get_user(user_id)
        return user.name if user else UNKNOWN_USER
