"""
TicketFlow transient notices.

One short message at a time ("Ticket #5 moved to CLOSED"). Posting a new
notice replaces the current one and restarts its expiry timer.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..config import get_settings

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class NoticeBoard:
    """Holds the current notice and clears it after ttl seconds."""

    def __init__(self, ttl: Optional[float] = None, sleep: Optional[Sleep] = None):
        self.ttl = get_settings().NOTICE_TTL_SECONDS if ttl is None else ttl
        self._sleep = sleep or asyncio.sleep
        self._message: Optional[str] = None
        self._expiry: Optional[asyncio.Task] = None
        self.posted = 0

    @property
    def message(self) -> Optional[str]:
        return self._message

    def post(self, message: str) -> None:
        """Show a notice. Needs a running event loop for the expiry timer."""
        self._cancel_expiry()
        self._message = message
        self.posted += 1
        logger.debug(f"Notice: {message}")
        self._expiry = asyncio.get_running_loop().create_task(self._expire(message))

    async def _expire(self, message: str) -> None:
        await self._sleep(self.ttl)
        if self._message == message:
            self._message = None
        self._expiry = None

    def clear(self) -> None:
        self._cancel_expiry()
        self._message = None

    def _cancel_expiry(self) -> None:
        if self._expiry is not None and not self._expiry.done():
            self._expiry.cancel()
        self._expiry = None

    def close(self) -> None:
        """Teardown: drop the notice and its pending timer."""
        self.clear()
