"""Tests for scoped modal subscriptions."""
import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from pokebot.errors import SessionError, SessionTimeout
from pokebot.modals import ModalBroker
from pokebot.models import EventKind, InteractionEvent


def _submission(value, sink=None):
    return InteractionEvent(
        kind=EventKind.MODAL_SUBMIT,
        actor_id=1,
        custom_id="sell_duplicates:abc:quantity",
        fields={"quantity": value},
        sink=sink,
    )


@pytest.mark.asyncio
async def test_delivery_reaches_waiting_subscriber():
    broker = ModalBroker()
    async with broker.subscribe("abc") as subscription:
        assert broker.is_waiting("abc")
        asyncio.get_running_loop().call_soon(broker.deliver, "abc", _submission("3"))
        event = await subscription.wait(1)
        assert event.fields["quantity"] == "3"
    assert not broker.is_waiting("abc")


@pytest.mark.asyncio
async def test_wait_times_out():
    broker = ModalBroker()
    async with broker.subscribe("abc") as subscription:
        with pytest.raises(SessionTimeout) as excinfo:
            await subscription.wait(0.01)
    assert excinfo.value.reason == "modal-timeout"
    assert not broker.is_waiting("abc")


@pytest.mark.asyncio
async def test_exhausted_budget_times_out_immediately():
    broker = ModalBroker()
    subscription = broker.subscribe("abc")
    with pytest.raises(SessionTimeout):
        await subscription.wait(0)
    subscription.close()


def test_deliver_without_subscriber_is_dropped():
    broker = ModalBroker()
    assert not broker.deliver("abc", _submission("1"))


def test_one_subscription_per_session():
    broker = ModalBroker()
    subscription = broker.subscribe("abc")
    with pytest.raises(SessionError):
        broker.subscribe("abc")
    subscription.close()
    assert subscription.closed
    broker.subscribe("abc").close()


@pytest.mark.asyncio
async def test_unread_submissions_are_acknowledged_on_exit():
    """Submissions queued behind the one that was read still get an answer."""
    broker = ModalBroker()
    read_sink = Mock(acknowledge=AsyncMock())
    extra_sink = Mock(acknowledge=AsyncMock())
    async with broker.subscribe("abc") as subscription:
        broker.deliver("abc", _submission("1", read_sink))
        broker.deliver("abc", _submission("2", extra_sink))
        event = await subscription.wait(1)
        assert event.fields["quantity"] == "1"

    extra_sink.acknowledge.assert_awaited_once()
    read_sink.acknowledge.assert_not_awaited()
    assert subscription.close() == []
