"""EventBus — asyncio.Queue fanout carrying committed state changes."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import structlog

logger = structlog.get_logger("core.event_bus")

TOPIC_STATE_CHANGED = "state.changed"


@dataclass(frozen=True, slots=True)
class Event:
    """Immutable event flowing through the EventBus."""

    topic: str
    payload: dict[str, Any]
    trace_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Subscription:
    """Queue-backed async iterator over the events of one topic.

    The queue is registered on the bus when the subscription is created,
    not on first iteration, so no event published after ``subscribe()``
    returns can be missed.
    """

    def __init__(self, bus: EventBus, topic: str, maxsize: int) -> None:
        self._bus = bus
        self.topic = topic
        self.queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> Event:
        if self._closed:
            raise StopAsyncIteration
        return await self.queue.get()

    def close(self) -> None:
        """Detach from the bus.  Idempotent."""
        if not self._closed:
            self._closed = True
            self._bus._detach(self)


class EventBus:
    """Fan-out pub/sub event bus backed by asyncio.Queue.

    Every ``subscribe(topic)`` call creates an independent queue; a
    ``publish()`` copies the event into each queue subscribed to the
    topic.  Publishing never blocks: a full queue drops the event for
    that subscriber and counts it.

    Usage::

        bus = EventBus()
        sub = bus.subscribe("state.changed")
        bus.publish_nowait("state.changed", {"changed": ["contractAddress"]})
        event = await sub.__anext__()
    """

    def __init__(self, maxsize: int = 4096) -> None:
        self._maxsize = maxsize
        # topic -> list of subscriptions
        self._subscribers: dict[str, list[Subscription]] = {}
        self._stats_published: int = 0
        self._stats_dropped: int = 0

    # ── Publish ──────────────────────────────────────────────────

    def publish_nowait(
        self,
        topic: str,
        payload: dict[str, Any],
        trace_id: str | None = None,
    ) -> Event:
        """Publish an event to all subscribers of *topic* and return it.

        Safe to call from synchronous code running on the event loop
        thread; the state store commits through this path.
        """
        if trace_id is None:
            trace_id = str(uuid4())

        event = Event(topic=topic, payload=payload, trace_id=trace_id)

        for sub in list(self._subscribers.get(topic, [])):
            try:
                sub.queue.put_nowait(event)
            except asyncio.QueueFull:
                self._stats_dropped += 1
                logger.warning(
                    "event_bus.queue_full",
                    topic=topic,
                    trace_id=trace_id,
                    queue_size=sub.queue.qsize(),
                )

        self._stats_published += 1
        return event

    async def publish(
        self,
        topic: str,
        payload: dict[str, Any],
        trace_id: str | None = None,
    ) -> Event:
        """Async alias of :meth:`publish_nowait` for coroutine callers."""
        return self.publish_nowait(topic, payload, trace_id=trace_id)

    # ── Subscribe ────────────────────────────────────────────────

    def subscribe(self, topic: str) -> Subscription:
        """Register a new subscriber queue for *topic*."""
        sub = Subscription(self, topic, self._maxsize)
        self._subscribers.setdefault(topic, []).append(sub)
        return sub

    def _detach(self, sub: Subscription) -> None:
        subs = self._subscribers.get(sub.topic, [])
        if sub in subs:
            subs.remove(sub)
        if not subs:
            self._subscribers.pop(sub.topic, None)

    # ── Introspection ────────────────────────────────────────────

    @property
    def topics(self) -> list[str]:
        """Return list of topics with active subscribers."""
        return list(self._subscribers.keys())

    def subscriber_count(self, topic: str) -> int:
        """Return number of active subscribers for *topic*."""
        return len(self._subscribers.get(topic, []))

    @property
    def stats(self) -> dict[str, int]:
        """Return basic stats: published and dropped counts."""
        return {
            "published": self._stats_published,
            "dropped": self._stats_dropped,
        }
