"""Tests for the background poll scheduler."""

import asyncio
from unittest.mock import MagicMock

import pytest

from ticketflow.client import RequestError
from ticketflow.models import TicketStatus
from ticketflow.services.poller import PollScheduler
from ticketflow.services.session import SessionContext
from ticketflow.services.store import TicketStore

from .conftest import settle


@pytest.fixture
def session(fake_api, admin) -> SessionContext:
    session = SessionContext()
    session.establish(admin, fake_api.issue_token(admin.id))
    return session


@pytest.fixture
def store() -> TicketStore:
    return TicketStore()


@pytest.fixture
def on_error() -> MagicMock:
    return MagicMock()


@pytest.fixture
def poller(fake_api, session, store, clock, on_error) -> PollScheduler:
    return PollScheduler(fake_api, session, store, interval=7.0, sleep=clock.sleep, on_error=on_error)


class TestRefresh:

    @pytest.mark.asyncio
    async def test_loud_refresh_toggles_loading(self, fake_api, session, store, clock):
        loading = []
        poller = PollScheduler(fake_api, session, store, sleep=clock.sleep, on_loading=loading.append)

        changed = await poller.refresh(quiet=False)

        assert changed is True
        assert loading == [True, False]
        assert len(store) == 5
        assert len(store.users()) == 4

    @pytest.mark.asyncio
    async def test_no_session_no_request(self, fake_api, store, clock):
        poller = PollScheduler(fake_api, SessionContext(), store, sleep=clock.sleep)

        assert await poller.refresh() is False
        assert fake_api.calls == []

    @pytest.mark.asyncio
    async def test_failure_leaves_store_untouched(self, fake_api, poller, store):
        await poller.refresh(quiet=False)
        snapshot = store.current_snapshot()
        fake_api.failures["get_tickets"] = RequestError("Gateway timeout", 504)

        with pytest.raises(RequestError):
            await poller.refresh()
        assert store.current_snapshot() == snapshot

    @pytest.mark.asyncio
    async def test_failure_cancels_sibling_request(self, fake_api, poller):
        cancelled = []

        async def hanging_users(token=None):
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.append("get_users")
                raise

        fake_api.get_users = hanging_users
        fake_api.failures["get_tickets"] = RequestError("Gateway timeout", 504)

        with pytest.raises(RequestError):
            await poller.refresh()
        await settle()

        assert cancelled == ["get_users"]

    @pytest.mark.asyncio
    async def test_snapshot_requested_before_delete_does_not_restore_it(
        self, fake_api, poller, store
    ):
        await poller.refresh(quiet=False)
        fake_api.gates["get_tickets"] = asyncio.Event()

        poll = asyncio.create_task(poller.refresh())
        await settle()
        fake_api.tickets = [t for t in fake_api.tickets if t.id != 3]
        store.remove(3)
        fake_api.gates["get_tickets"].set()
        changed = await poll

        assert changed is False
        assert 3 not in store


class TestSchedule:

    @pytest.mark.asyncio
    async def test_does_not_start_without_session(self, fake_api, store, clock):
        poller = PollScheduler(fake_api, SessionContext(), store, sleep=clock.sleep)

        poller.start()

        assert not poller.running
        await clock.advance(30)
        assert fake_api.calls == []

    @pytest.mark.asyncio
    async def test_ticks_every_interval(self, fake_api, poller, clock):
        poller.start()

        await clock.advance(6.5)
        assert poller.ticks == 0
        await clock.advance(0.5)
        assert poller.ticks == 1
        assert fake_api.calls.count("get_tickets") == 1
        await clock.advance(7.0)
        assert poller.ticks == 2

        await poller.stop()

    @pytest.mark.asyncio
    async def test_quiet_tick_reports_remote_change(self, fake_api, poller, store):
        await poller.refresh(quiet=False)
        listener = MagicMock()
        store.subscribe(listener)
        ticket = fake_api.tickets[2]
        fake_api.tickets[2] = ticket.model_copy(update={"status": TicketStatus.CLOSED})

        await poller.tick()

        listener.assert_called_once()
        assert store.get(ticket.id).status == TicketStatus.CLOSED

    @pytest.mark.asyncio
    async def test_failed_tick_reported_and_next_proceeds(self, fake_api, poller, on_error, clock):
        fake_api.failures["get_users"] = RequestError("Server unavailable", 503)
        poller.start()

        await clock.advance(7.0)
        on_error.assert_called_once_with("Server unavailable")
        assert poller.running

        del fake_api.failures["get_users"]
        await clock.advance(7.0)
        assert poller.ticks == 2
        on_error.assert_called_once()

        await poller.stop()

    @pytest.mark.asyncio
    async def test_stop_prevents_further_ticks(self, fake_api, poller, clock):
        poller.start()
        await settle()

        await poller.stop()
        await clock.advance(70)

        assert poller.ticks == 0
        assert not poller.running
        assert clock.pending == 0

    @pytest.mark.asyncio
    async def test_session_end_stops_loop(self, fake_api, poller, session, clock):
        poller.start()
        await settle()

        session.clear()
        await clock.advance(7)

        assert poller.ticks == 0
        assert not poller.running

    @pytest.mark.asyncio
    async def test_start_twice_runs_one_loop(self, fake_api, poller, clock):
        poller.start()
        poller.start()

        await clock.advance(7.0)

        assert poller.ticks == 1
        await poller.stop()
