"""Tests for Handoff - the single-slot rendezvous between ingestion and loop."""

import asyncio

import pytest

from tink_agent.transport.handoff import Handoff


class TestBackpressure:
    """A producer cannot run ahead of the consumer."""

    async def test_put_waits_until_taken(self, make_action):
        handoff = Handoff()
        action = make_action("wf-1")

        put = asyncio.create_task(handoff.put(action))
        await asyncio.sleep(0.01)
        assert not put.done()

        assert await handoff.get() == action
        assert await put is True

    async def test_second_put_waits_for_first_take(self, make_action):
        handoff = Handoff()

        async def produce():
            for action_id in ("wf-1", "wf-2"):
                await handoff.put(make_action(action_id))

        producer = asyncio.create_task(produce())
        await asyncio.sleep(0.01)
        assert not producer.done()

        assert (await handoff.get()).id == "wf-1"
        await asyncio.sleep(0.01)
        assert not producer.done()

        assert (await handoff.get()).id == "wf-2"
        await asyncio.wait_for(producer, timeout=1)

    async def test_cancelled_put_is_skipped_by_get(self, make_action):
        handoff = Handoff()

        stale = asyncio.create_task(handoff.put(make_action("wf-1")))
        await asyncio.sleep(0.01)
        stale.cancel()
        with pytest.raises(asyncio.CancelledError):
            await stale

        fresh = asyncio.create_task(handoff.put(make_action("wf-2")))
        assert (await asyncio.wait_for(handoff.get(), timeout=1)).id == "wf-2"
        assert await fresh is True


class TestReset:
    """Reset abandons the current batch."""

    async def test_reset_releases_waiting_producer(self, make_action):
        handoff = Handoff()

        put = asyncio.create_task(handoff.put(make_action("wf-1")))
        await asyncio.sleep(0.01)

        assert handoff.reset() == 1
        assert await asyncio.wait_for(put, timeout=1) is False

    async def test_put_from_old_generation_is_refused(self, make_action):
        handoff = Handoff()
        generation = handoff.generation
        handoff.reset()

        assert await handoff.put(make_action("wf-1"), generation) is False

    async def test_new_generation_is_delivered_after_reset(self, make_action):
        handoff = Handoff()
        handoff.reset()

        put = asyncio.create_task(handoff.put(make_action("wf-2"), handoff.generation))

        assert (await asyncio.wait_for(handoff.get(), timeout=1)).id == "wf-2"
        assert await put is True

    async def test_reset_with_nothing_waiting(self):
        handoff = Handoff()

        handoff.reset()
        handoff.reset()

        assert handoff.generation == 2
