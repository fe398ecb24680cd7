"""DelegationState — the observable fields shared by UI, aggregator and negotiator."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from web3 import Web3

from .delegation import DelegationRequest, DelegationSignature

# Derived fields are recomputed on every commit and cannot be written
DERIVED_FIELDS = frozenset({"warning_message_read_only"})


class DelegationState(BaseModel):
    """Immutable snapshot of the store.

    The store swaps snapshots on commit; nothing mutates one in place.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    # ── Inputs (UI / wallet) ────────────────────────────────────
    contract_address: str = ""
    target_network: str = "mainnet"
    function_name: str = ""
    function_arguments: list[Any] = Field(default_factory=list)
    current_ethereum_account: Optional[str] = None

    # ── Derived ─────────────────────────────────────────────────
    warning_message_read_only: str = ""

    # ── Outputs ─────────────────────────────────────────────────
    backend_warning_message: Optional[str] = None
    approved_delegation_request: Optional[DelegationRequest] = None
    global_info_message: str = ""
    delegation_confirmation_request_pending: bool = False
    delegation_signature: Optional[DelegationSignature] = None


def input_warning(state: DelegationState) -> str:
    """Warning that blocks quoting, or ``""`` when inputs are usable."""
    if not state.contract_address:
        return "Enter a contract address"
    if not Web3.is_address(state.contract_address):
        return f"{state.contract_address} is not a valid contract address"
    if not state.function_name:
        return "Choose a contract function"
    if not state.current_ethereum_account:
        return "Connect a wallet to sign delegated calls"
    return ""
