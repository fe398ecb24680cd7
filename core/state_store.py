"""StateStore — observable delegation state with transactional commits.

Writes are collected in a :class:`StateTransaction` and applied as one
snapshot swap.  Each commit that changes anything publishes exactly one
``state.changed`` event listing the changed fields, so observers never
see a half-applied batch (e.g. a warning cleared but the approved
request not yet set).
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

import structlog

from core.event_bus import TOPIC_STATE_CHANGED, EventBus
from models.state import DERIVED_FIELDS, DelegationState, input_warning

logger = structlog.get_logger("core.state_store")


class StateTransaction:
    """Accumulates field writes until the enclosing transaction commits."""

    def __init__(self) -> None:
        self._writes: dict[str, Any] = {}

    def set(self, name: str, value: Any) -> None:
        if name in DERIVED_FIELDS:
            raise ValueError(f"{name} is derived and cannot be written")
        if name not in DelegationState.model_fields:
            raise AttributeError(f"DelegationState has no field {name!r}")
        self._writes[name] = value

    def update(self, **fields: Any) -> None:
        for name, value in fields.items():
            self.set(name, value)

    @property
    def writes(self) -> dict[str, Any]:
        return dict(self._writes)


class StateStore:
    """Holds the current :class:`DelegationState` and publishes its changes.

    Usage::

        store = StateStore(bus)
        with store.transaction(reason="ui") as tx:
            tx.set("contract_address", "0x...")
            tx.set("function_name", "transfer")

    Nested ``transaction()`` blocks join the outermost one; an exception
    inside the outermost block discards every pending write.
    """

    def __init__(
        self,
        bus: EventBus | None = None,
        initial: DelegationState | None = None,
    ) -> None:
        self._bus = bus
        base = initial or DelegationState()
        self._state = base.model_copy(
            update={"warning_message_read_only": input_warning(base)},
        )
        self._revision = 0
        self._open: StateTransaction | None = None

    @property
    def state(self) -> DelegationState:
        """Current committed snapshot."""
        return self._state

    @property
    def revision(self) -> int:
        """Number of commits that changed at least one field."""
        return self._revision

    @property
    def bus(self) -> EventBus | None:
        return self._bus

    @contextmanager
    def transaction(self, reason: str = "") -> Iterator[StateTransaction]:
        if self._open is not None:
            yield self._open
            return

        tx = StateTransaction()
        self._open = tx
        try:
            yield tx
        finally:
            self._open = None
        # Only reached when the block exited cleanly
        self._commit(tx, reason)

    def set(self, reason: str = "", **fields: Any) -> None:
        """Write *fields* in a single transaction."""
        with self.transaction(reason=reason) as tx:
            tx.update(**fields)

    def _commit(self, tx: StateTransaction, reason: str) -> list[str]:
        writes = tx.writes
        if not writes:
            return []

        old = self._state
        candidate = old.model_copy(update=writes)
        new = candidate.model_copy(
            update={"warning_message_read_only": input_warning(candidate)},
        )
        changed = [
            name for name in DelegationState.model_fields
            if getattr(old, name) != getattr(new, name)
        ]
        if not changed:
            return []

        self._state = new
        self._revision += 1

        logger.debug(
            "state_store.committed",
            revision=self._revision,
            changed=changed,
            reason=reason,
        )

        if self._bus is not None:
            self._bus.publish_nowait(
                TOPIC_STATE_CHANGED,
                {"changed": changed, "revision": self._revision, "reason": reason},
            )
        return changed
