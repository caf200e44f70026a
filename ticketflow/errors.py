"""
TicketFlow Errors

Every failure the core surfaces derives from TicketflowError so the
workspace can turn any of them into the single user-visible message.
"""


class TicketflowError(Exception):
    """Base for recoverable failures. Nothing in the core is fatal."""
    pass


class NotAuthenticated(TicketflowError):
    """Raised when an action needs a session and none is established."""
    pass


class ValidationFailure(TicketflowError):
    """Raised when form input is rejected before reaching the server."""
    pass


class TicketNotFound(TicketflowError):
    """Raised when an action targets a ticket no longer in the store."""

    def __init__(self, ticket_id: int):
        super().__init__(f"Ticket #{ticket_id} not found")
        self.ticket_id = ticket_id
