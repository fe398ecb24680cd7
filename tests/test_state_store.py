"""Tests for core.state_store — transactions, derived warning, change events."""

from __future__ import annotations

import pytest

from core.event_bus import TOPIC_STATE_CHANGED, EventBus
from core.state_store import StateStore
from models.delegation import DelegationRequest

from fakes import ACCOUNT, CONTRACT


class TestTransactions:

    def test_single_commit_for_batch(self) -> None:
        bus = EventBus()
        sub = bus.subscribe(TOPIC_STATE_CHANGED)
        store = StateStore(bus)

        with store.transaction(reason="ui") as tx:
            tx.set("contract_address", CONTRACT)
            tx.set("function_name", "transfer")

        assert store.revision == 1
        assert sub.queue.qsize() == 1
        event = sub.queue.get_nowait()
        assert set(event.payload["changed"]) >= {"contract_address", "function_name"}
        assert event.payload["reason"] == "ui"
        assert event.payload["revision"] == 1

    def test_writes_invisible_until_commit(self) -> None:
        store = StateStore()
        with store.transaction() as tx:
            tx.set("global_info_message", "hello")
            assert store.state.global_info_message == ""
        assert store.state.global_info_message == "hello"

    def test_nested_transactions_join_outer(self) -> None:
        bus = EventBus()
        sub = bus.subscribe(TOPIC_STATE_CHANGED)
        store = StateStore(bus)

        with store.transaction() as outer:
            outer.set("global_info_message", "a")
            store.set(backend_warning_message="w")
            assert store.state.backend_warning_message is None

        assert sub.queue.qsize() == 1
        assert store.state.global_info_message == "a"
        assert store.state.backend_warning_message == "w"

    def test_exception_discards_writes(self) -> None:
        store = StateStore()
        with pytest.raises(RuntimeError):
            with store.transaction() as tx:
                tx.set("global_info_message", "lost")
                raise RuntimeError("boom")
        assert store.state.global_info_message == ""
        assert store.revision == 0

        # Store is usable afterwards
        store.set(global_info_message="kept")
        assert store.state.global_info_message == "kept"

    def test_no_change_no_event(self) -> None:
        bus = EventBus()
        sub = bus.subscribe(TOPIC_STATE_CHANGED)
        store = StateStore(bus)

        store.set(global_info_message="")
        with store.transaction():
            pass

        assert sub.queue.empty()
        assert store.revision == 0

    def test_unknown_field_rejected(self) -> None:
        store = StateStore()
        with pytest.raises(AttributeError):
            store.set(no_such_field=1)

    def test_derived_field_not_writable(self) -> None:
        store = StateStore()
        with pytest.raises(ValueError, match="derived"):
            store.set(warning_message_read_only="nope")

    def test_snapshots_are_immutable(self) -> None:
        store = StateStore()
        before = store.state
        store.set(global_info_message="x")
        assert before.global_info_message == ""
        assert store.state is not before


class TestDerivedWarning:

    def test_initial_state_warns(self) -> None:
        assert StateStore().state.warning_message_read_only == "Enter a contract address"

    def test_invalid_address(self) -> None:
        store = StateStore()
        store.set(contract_address="0x123")
        assert "not a valid contract address" in store.state.warning_message_read_only

    def test_cleared_when_inputs_complete(self) -> None:
        bus = EventBus()
        sub = bus.subscribe(TOPIC_STATE_CHANGED)
        store = StateStore(bus)

        store.set(
            contract_address=CONTRACT,
            function_name="transfer",
            current_ethereum_account=ACCOUNT,
        )

        assert store.state.warning_message_read_only == ""
        event = sub.queue.get_nowait()
        assert "warning_message_read_only" in event.payload["changed"]

    def test_missing_account(self) -> None:
        store = StateStore()
        store.set(contract_address=CONTRACT, function_name="transfer")
        assert "wallet" in store.state.warning_message_read_only.lower()


class TestApprovedRequest:

    def test_replaced_wholesale(self) -> None:
        store = StateStore()
        first = DelegationRequest(id="a", fee=1, signatureOptions=[{"standard": "x"}])
        second = DelegationRequest(id="b", fee=2, signatureOptions=[{"standard": "y"}])

        store.set(approved_delegation_request=first)
        store.set(approved_delegation_request=second)

        assert store.state.approved_delegation_request is second
        assert first.id == "a"
