"""
TicketFlow Poll Scheduler

Keeps the store fresh while someone is signed in.

- One loud load at session start (loading indicator on)
- Quiet polls every POLL_INTERVAL_SECONDS after that
- A failed poll is logged and reported; the next tick runs as usual
- Stops as soon as the session ends or the owner tears it down

Each tick is awaited before the next sleep starts, so ticks never overlap.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..config import get_settings
from ..client import TicketApi
from ..errors import TicketflowError
from .session import SessionContext
from .store import TicketStore

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
ErrorSink = Callable[[str], None]
LoadingSink = Callable[[bool], None]


class PollScheduler:
    """Background refresh of tickets and users into the store."""

    def __init__(
        self,
        api: TicketApi,
        session: SessionContext,
        store: TicketStore,
        interval: Optional[float] = None,
        sleep: Optional[Sleep] = None,
        on_error: Optional[ErrorSink] = None,
        on_loading: Optional[LoadingSink] = None,
    ):
        self.api = api
        self.session = session
        self.store = store
        self.interval = get_settings().POLL_INTERVAL_SECONDS if interval is None else interval
        self._sleep = sleep or asyncio.sleep
        self._on_error = on_error or (lambda message: None)
        self._on_loading = on_loading or (lambda loading: None)
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def refresh(self, quiet: bool = True) -> bool:
        """
        Fetch tickets and users once and merge them.

        Returns whether the snapshot differed from the store. Raises the
        request layer's error; the store is untouched in that case.
        """
        if not self.session.is_active:
            return False
        generation = self.session.generation
        token = self.session.credential
        since = self.store.revision

        if not quiet:
            self._on_loading(True)
        requests = [
            asyncio.ensure_future(self.api.get_users(token=token)),
            asyncio.ensure_future(self.api.get_tickets(token=token)),
        ]
        try:
            users, tickets = await asyncio.gather(*requests)
        except Exception:
            # Cancel whichever request is still pending
            for request in requests:
                request.cancel()
            raise
        finally:
            if not quiet:
                self._on_loading(False)

        if generation != self.session.generation:
            logger.debug("Dropping poll result: session changed mid-flight")
            return False

        self.store.replace_users(users)
        return self.store.replace_all(tickets, quiet=quiet, since=since)

    async def tick(self) -> None:
        """One quiet poll. Failures are reported, never raised."""
        self.ticks += 1
        try:
            changed = await self.refresh(quiet=True)
            logger.debug(f"Poll #{self.ticks} done (changed={changed})")
        except TicketflowError as e:
            logger.warning(f"Poll #{self.ticks} failed: {e}")
            self._on_error(str(e))

    async def _run(self) -> None:
        while self.session.is_active:
            await self._sleep(self.interval)
            if not self.session.is_active:
                break
            await self.tick()
        logger.debug("Poll loop finished")

    def start(self) -> None:
        """Begin quiet polling. No-op without a session or if already running."""
        if not self.session.is_active:
            logger.debug("Not starting poller: no session")
            return
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Polling every {self.interval}s")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Polling stopped")
