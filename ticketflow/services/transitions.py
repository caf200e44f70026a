"""
TicketFlow Status Transition Engine

Validates and executes ticket mutations coming from the board and forms.

Status is NOT a sequenced workflow: OPEN, IN_PROGRESS and CLOSED are all
reachable from each other. The only gate is authorization:
- Drag moves need can_drag; refused drags are dropped silently
- Form moves need can_manage and a role allowed to edit status
- Field edits need can_manage; EMPLOYEE edits keep the existing status

Authorization is checked before any request is made. The store is only
touched after the request layer has answered successfully.
"""

import logging
from typing import List, Optional

from ..client import TicketApi
from ..errors import TicketNotFound, ValidationFailure
from ..models.ticket import (
    MoveIntent,
    MoveOrigin,
    Role,
    Ticket,
    TicketFormValues,
    TicketInput,
    TicketStatus,
    TicketUpdate,
    User,
)
from .notices import NoticeBoard
from .session import AuthorizationError, SessionContext
from .store import TicketStore

logger = logging.getLogger(__name__)


def move_notice(ticket_id: int, status: TicketStatus) -> str:
    return f"Ticket #{ticket_id} moved to {status.value}"


def assignable_agents(users: List[User]) -> List[User]:
    """Who a ticket can be assigned to."""
    return [user for user in users if user.role == Role.AGENT]


def clean_form(values: TicketFormValues) -> TicketFormValues:
    """Strip text fields and reject blank title or description."""
    title = values.title.strip()
    description = values.description.strip()
    if not title or not description:
        raise ValidationFailure("Title and description are required.")
    return values.model_copy(update={"title": title, "description": description})


class StatusTransitionEngine:
    """
    Executes moves and edits against the request layer and the store.

    api is the request layer (a TicketApi, normally TicketflowClient).
    """

    def __init__(
        self,
        api: TicketApi,
        session: SessionContext,
        store: TicketStore,
        notices: NoticeBoard,
    ):
        self.api = api
        self.session = session
        self.store = store
        self.notices = notices

    def _lookup(self, ticket_id: int) -> Ticket:
        ticket = self.store.get(ticket_id)
        if ticket is None:
            raise TicketNotFound(ticket_id)
        return ticket

    def _apply(self, ticket: Ticket, generation: int) -> bool:
        """Upsert a server answer unless the session changed while waiting."""
        if generation != self.session.generation:
            logger.info(f"Discarding response for ticket #{ticket.id}: session changed")
            return False
        self.store.upsert(ticket)
        return True

    # =========================================================================
    # Moves
    # =========================================================================

    async def handle_intent(self, intent: MoveIntent) -> Optional[Ticket]:
        return await self.move(intent.ticket_id, intent.target_status, intent.origin)

    async def move(
        self,
        ticket_id: int,
        target_status: TicketStatus,
        origin: MoveOrigin = MoveOrigin.DRAG,
    ) -> Optional[Ticket]:
        """
        Move a ticket to target_status.

        Returns the stored ticket after the move, the unchanged ticket for a
        no-op move, or None for a refused or stale drag. Form moves raise
        AuthorizationError / TicketNotFound instead of returning None.
        """
        ticket = self.store.get(ticket_id)
        if ticket is None:
            if origin == MoveOrigin.DRAG:
                logger.debug(f"Dropped drag of missing ticket #{ticket_id}")
                return None
            raise TicketNotFound(ticket_id)

        if origin == MoveOrigin.DRAG:
            if not self.session.can_drag(ticket):
                logger.debug(f"Drag of ticket #{ticket_id} not permitted")
                return None
        elif not self.session.can_edit_status(ticket):
            raise AuthorizationError(
                f"You are not allowed to change the status of ticket #{ticket_id}."
            )

        if ticket.status == target_status:
            return ticket

        generation = self.session.generation
        updated = await self.api.update_ticket(
            ticket_id,
            TicketUpdate(status=target_status),
            token=self.session.credential,
        )
        if not self._apply(updated, generation):
            return None
        logger.info(f"Ticket #{ticket_id}: {ticket.status.value} -> {updated.status.value}")
        self.notices.post(move_notice(ticket_id, updated.status))
        return updated

    # =========================================================================
    # Field edits
    # =========================================================================

    async def update(self, ticket_id: int, values: TicketFormValues) -> Ticket:
        """
        Save the edit form.

        Every field is sent, so a None assignee clears the assignment.
        """
        ticket = self._lookup(ticket_id)
        if not self.session.can_manage(ticket):
            raise AuthorizationError(f"You are not allowed to edit ticket #{ticket_id}.")

        values = clean_form(values)
        status = values.status if self.session.can_edit_status(ticket) else ticket.status

        generation = self.session.generation
        updated = await self.api.update_ticket(
            ticket_id,
            TicketUpdate(
                title=values.title,
                description=values.description,
                image_url=values.image_url,
                status=status,
                priority=values.priority,
                assigned_to_id=values.assigned_to_id,
            ),
            token=self.session.credential,
        )
        applied = self._apply(updated, generation)
        if applied and updated.status != ticket.status:
            self.notices.post(move_notice(ticket_id, updated.status))
        return updated

    async def create(self, values: TicketFormValues) -> Ticket:
        identity = self.session.require_identity()
        values = clean_form(values)

        payload = TicketInput(
            title=values.title,
            description=values.description,
            image_url=values.image_url,
            assigned_to_id=values.assigned_to_id,
            priority=values.priority,
        )
        if identity.role != Role.EMPLOYEE:
            payload.status = values.status

        generation = self.session.generation
        created = await self.api.create_ticket(payload, token=self.session.credential)
        self._apply(created, generation)
        logger.info(f"Created ticket #{created.id}")
        return created

    async def delete(self, ticket_id: int) -> None:
        """Delete after the caller has confirmed with the user."""
        ticket = self._lookup(ticket_id)
        if not self.session.can_manage(ticket):
            raise AuthorizationError(f"You are not allowed to delete ticket #{ticket_id}.")

        await self.api.delete_ticket(ticket_id, token=self.session.credential)
        self.store.remove(ticket_id)
        logger.info(f"Deleted ticket #{ticket_id}")
