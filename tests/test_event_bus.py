"""Tests for core.event_bus — subscribe, fanout, cleanup, backpressure."""

from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest

from core.event_bus import Event, EventBus


class TestEventBusBasic:

    @pytest.mark.asyncio
    async def test_subscriber_registered_before_first_iteration(self):
        bus = EventBus()
        sub = bus.subscribe("state.changed")

        bus.publish_nowait("state.changed", {"changed": ["contract_address"]})
        event = await asyncio.wait_for(sub.__anext__(), timeout=1)

        assert event.topic == "state.changed"
        assert event.payload["changed"] == ["contract_address"]
        assert event.trace_id

    @pytest.mark.asyncio
    async def test_explicit_trace_id(self):
        bus = EventBus()
        tid = str(uuid4())
        sub = bus.subscribe("t")

        returned = await bus.publish("t", {"x": 1}, trace_id=tid)
        event = sub.queue.get_nowait()

        assert event.trace_id == tid
        assert returned is event
        assert event.timestamp is not None

    @pytest.mark.asyncio
    async def test_async_for_consumer(self):
        bus = EventBus()
        sub = bus.subscribe("tick")
        received: list[Event] = []

        async def consumer():
            async for event in sub:
                received.append(event)
                if len(received) >= 3:
                    break

        task = asyncio.create_task(consumer())
        for i in range(3):
            bus.publish_nowait("tick", {"seq": i})
        await asyncio.wait_for(task, timeout=1)

        assert [e.payload["seq"] for e in received] == [0, 1, 2]


class TestEventBusFanout:

    def test_fanout_and_isolation(self):
        bus = EventBus()
        a = bus.subscribe("book")
        b = bus.subscribe("book")
        other = bus.subscribe("trade")

        bus.publish_nowait("book", {"v": 1})

        ea, eb = a.queue.get_nowait(), b.queue.get_nowait()
        assert ea.trace_id == eb.trace_id
        assert other.queue.empty()

    def test_publish_without_subscribers(self):
        bus = EventBus()
        bus.publish_nowait("nobody", {})
        assert bus.stats["published"] == 1


class TestEventBusCleanup:

    @pytest.mark.asyncio
    async def test_close_detaches_and_stops_iteration(self):
        bus = EventBus()
        sub = bus.subscribe("book")
        assert bus.subscriber_count("book") == 1
        assert "book" in bus.topics

        sub.close()
        sub.close()

        assert bus.subscriber_count("book") == 0
        assert "book" not in bus.topics
        with pytest.raises(StopAsyncIteration):
            await sub.__anext__()


class TestEventBusBackpressure:

    def test_queue_full_drops_event(self):
        bus = EventBus(maxsize=2)
        sub = bus.subscribe("data")

        for i in range(5):
            bus.publish_nowait("data", {"seq": i})

        assert sub.queue.qsize() == 2
        assert bus.stats == {"published": 5, "dropped": 3}
