"""
TicketFlow Client Core

Client-side ticket state and access control for the TicketFlow tracker:
- Session context with role-based capabilities
- Ticket store reconciled against server polls
- Per-role visibility scoping and status summaries
- Kanban status transitions with drag authorization
- Background quiet polling
"""

__version__ = "0.1.0"
