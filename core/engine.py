"""DelegationEngine — wires the store, the bus and both negotiation reactions."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from config.settings import settings
from core.event_bus import TOPIC_STATE_CHANGED, EventBus, Subscription
from core.state_store import StateStore
from negotiation.aggregator import BackendQuoteAggregator, DescriptorSource, QuoteTransport
from negotiation.negotiator import SignatureNegotiator, SigningAgent

logger = structlog.get_logger("core.engine")


class DelegationEngine:
    """Runs the quote aggregator and the signature negotiator off store events.

    Every committed store transaction produces one ``state.changed``
    event; the dispatch loop hands its changed-field list to each
    reaction, which decides for itself whether to start work.

    Usage::

        async with DelegationEngine(transport=client, descriptors=directory,
                                    signer=signer) as engine:
            engine.store.set(contract_address="0x...", function_name="transfer")
            await engine.wait_idle()

    Parameters
    ----------
    transport:
        Backend HTTP transport (``data.backend_client.BackendClient``).
    descriptors:
        Backend descriptor source (``data.backend_directory.BackendDirectory``).
    signer:
        Signing agent.  Without one, no negotiator is started.
    store, bus:
        Injected for tests; created when omitted.  An injected store must
        publish to an event bus, and *bus*, if also given, must be that bus.
    priority:
        Signature standard priority, highest first.
    """

    def __init__(
        self,
        transport: QuoteTransport,
        descriptors: DescriptorSource,
        signer: SigningAgent | None = None,
        store: StateStore | None = None,
        bus: EventBus | None = None,
        priority: list[str] | None = None,
    ) -> None:
        if store is not None:
            # The engine only hears commits published on the store's own bus
            if store.bus is None:
                raise ValueError("store has no event bus; build it with StateStore(bus)")
            if bus is not None and bus is not store.bus:
                raise ValueError("bus must be the bus the store publishes to")
            bus = store.bus
        self.bus = bus or EventBus(maxsize=settings.EVENT_BUS_MAXSIZE)
        self.store = store or StateStore(self.bus)
        self.aggregator = BackendQuoteAggregator(self.store, transport, descriptors)
        self.negotiator: SignatureNegotiator | None = (
            SignatureNegotiator(self.store, signer, priority) if signer is not None else None
        )
        self._subscription: Subscription | None = None
        self._dispatch_task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._dispatch_task is not None

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        """Subscribe to store changes and start dispatching.  Idempotent."""
        if self._dispatch_task is not None:
            return
        self._subscription = self.bus.subscribe(TOPIC_STATE_CHANGED)
        self._dispatch_task = asyncio.create_task(
            self._dispatch_loop(self._subscription), name="delegation_dispatch",
        )
        logger.info("engine.started", negotiator=self.negotiator is not None)

    async def stop(self) -> None:
        """Stop dispatching and cancel in-flight work.  Idempotent."""
        if self._dispatch_task is None:
            return

        self._dispatch_task.cancel()
        try:
            await self._dispatch_task
        except asyncio.CancelledError:
            pass
        self._dispatch_task = None

        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

        in_flight = self.aggregator.pending_tasks
        if self.negotiator is not None:
            in_flight |= self.negotiator.pending_tasks
        for task in in_flight:
            task.cancel()
        await asyncio.gather(*in_flight, return_exceptions=True)
        logger.info("engine.stopped", cancelled=len(in_flight))

    # ── Dispatch ─────────────────────────────────────────────────

    async def _dispatch_loop(self, subscription: Subscription) -> None:
        async for event in subscription:
            changed = event.payload.get("changed", [])
            try:
                self.aggregator.on_state_changed(changed)
                if self.negotiator is not None:
                    self.negotiator.on_state_changed(changed)
            except Exception:
                logger.exception("engine.dispatch_error", trace_id=event.trace_id)

    async def wait_idle(self) -> None:
        """Wait until every published change is dispatched and all work is done."""
        while True:
            await asyncio.sleep(0)
            if self._subscription is not None and not self._subscription.queue.empty():
                continue
            await self.aggregator.wait_idle()
            if self.negotiator is not None:
                await self.negotiator.wait_idle()
            # Finished work may have committed new changes
            if self._subscription is None or self._subscription.queue.empty():
                return

    # ── Context manager ──────────────────────────────────────────

    async def __aenter__(self) -> DelegationEngine:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()
