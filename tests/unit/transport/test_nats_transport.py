"""Tests for NATSTransport - pub/sub batch ingestion and event publishing."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import nats.errors
import pytest

from tink_agent.domain.entities.event import Event, State
from tink_agent.domain.serialization import encode_actions
from tink_agent.errors import TransportError
from tink_agent.transport.nats import NATSTransport


@pytest.fixture
def transport():
    return NATSTransport(server="10.0.0.5:4222", agent_id="machine1", poll_interval=0.01)


def message(data: bytes) -> MagicMock:
    msg = MagicMock()
    msg.data = data
    return msg


class TestSubjects:
    def test_subject_names(self, transport):
        assert transport.actions_subject_name == "tinkerbell.machine1.workflow_actions"
        assert transport.events_subject_name == "tinkerbell.machine1.workflow_status"


class TestWrite:
    """Event publishing."""

    async def test_publishes_event_text(self, transport, make_action):
        conn = AsyncMock()
        transport._conn = conn
        event = Event(action=make_action("wf-1"), message="running action", state=State.RUNNING)

        await transport.write(event)

        conn.publish.assert_awaited_once_with(
            "tinkerbell.machine1.workflow_status", str(event).encode()
        )

    async def test_write_without_connection_fails(self, transport, make_action):
        event = Event(action=make_action("wf-1"), message="running action", state=State.RUNNING)

        with pytest.raises(TransportError):
            await transport.write(event)

    async def test_publish_error_is_wrapped(self, transport, make_action):
        conn = AsyncMock()
        conn.publish = AsyncMock(side_effect=nats.errors.ConnectionClosedError())
        transport._conn = conn
        event = Event(action=make_action("wf-1"), message="action completed", state=State.SUCCESS)

        with pytest.raises(TransportError):
            await transport.write(event)

    async def test_failure_abandons_rest_of_batch(self, transport, make_action):
        transport._conn = AsyncMock()
        batch = [make_action("wf-1"), make_action("wf-2"), make_action("wf-3")]
        deliver = asyncio.create_task(transport._deliver(batch))

        first = await asyncio.wait_for(transport.read(), timeout=1)
        await transport.write(Event(action=first, message="action completed", state=State.FAILURE))

        await asyncio.wait_for(deliver, timeout=1)
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(transport.read(), timeout=0.05)

    async def test_success_keeps_batch(self, transport, make_action):
        transport._conn = AsyncMock()
        deliver = asyncio.create_task(
            transport._deliver([make_action("wf-1"), make_action("wf-2")])
        )

        first = await asyncio.wait_for(transport.read(), timeout=1)
        await transport.write(Event(action=first, message="action completed", state=State.SUCCESS))

        assert (await asyncio.wait_for(transport.read(), timeout=1)).id == "wf-2"
        await asyncio.wait_for(deliver, timeout=1)


class TestIngestion:
    """Subscription handling."""

    async def test_batches_are_decoded_and_delivered(self, transport, make_action):
        payload = encode_actions([make_action("wf-1"), make_action("wf-2")]).encode()
        sub = AsyncMock()
        sub.next_msg = AsyncMock(
            side_effect=[nats.errors.TimeoutError(), message(payload), asyncio.CancelledError()]
        )
        consume = asyncio.create_task(transport._consume(sub))

        assert (await asyncio.wait_for(transport.read(), timeout=1)).id == "wf-1"
        assert (await asyncio.wait_for(transport.read(), timeout=1)).id == "wf-2"
        with pytest.raises(asyncio.CancelledError):
            await consume

    async def test_undecodable_batch_is_skipped(self, transport, make_action):
        good = encode_actions([make_action("wf-9")]).encode()
        sub = AsyncMock()
        sub.next_msg = AsyncMock(
            side_effect=[message(b"{not: [valid"), message(good), asyncio.CancelledError()]
        )
        consume = asyncio.create_task(transport._consume(sub))

        assert (await asyncio.wait_for(transport.read(), timeout=1)).id == "wf-9"
        with pytest.raises(asyncio.CancelledError):
            await consume

    async def test_start_releases_subscription_and_connection(self, transport):
        sub = AsyncMock()
        sub.next_msg = AsyncMock(side_effect=asyncio.CancelledError())
        conn = AsyncMock()
        conn.subscribe = AsyncMock(return_value=sub)
        transport.connect = AsyncMock(return_value=conn)

        with pytest.raises(asyncio.CancelledError):
            await transport.start()

        conn.subscribe.assert_awaited_once_with("tinkerbell.machine1.workflow_actions")
        sub.unsubscribe.assert_awaited_once()
        conn.close.assert_awaited_once()
        assert transport._conn is None
