"""SignatureNegotiator — obtain a signature for the approved delegation request.

Standards offered by the backend are tried one at a time, highest
priority first, until the signing agent returns a signature.  If every
standard is declined the pending confirmation is withdrawn and the user
is told which standards the backend accepts.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol

import structlog

from config.settings import settings
from core.state_store import StateStore
from models.delegation import DelegationRequest, DelegationSignature, SignatureOption
from models.state import DelegationState
from negotiation.messages import INFO_PLEASE_SIGN, info_please_sign_again

logger = structlog.get_logger("negotiation.negotiator")


class SigningAgent(Protocol):
    async def sign(
        self, state: DelegationState, standard: str, data_to_sign: Any,
    ) -> Optional[str]: ...


class NegotiationOutcome(str, Enum):
    """Terminal state of one negotiation."""

    SUCCEEDED = "SUCCEEDED"
    EXHAUSTED = "EXHAUSTED"


@dataclass(frozen=True)
class NegotiationResult:
    outcome: NegotiationOutcome
    attempted: list[str] = field(default_factory=list)
    signature: Optional[DelegationSignature] = None


def order_by_priority(
    options: Sequence[SignatureOption],
    priority: Sequence[str],
) -> list[SignatureOption]:
    """Stable-sort *options* by the position of their standard in *priority*.

    Standards missing from *priority* sort last and keep their relative
    order.
    """
    rank: dict[str, int] = {}
    for i, standard in enumerate(priority):
        rank.setdefault(standard, i)
    lowest = len(rank)
    return sorted(options, key=lambda o: rank.get(o.standard, lowest))


class SignatureNegotiator:
    """Reacts to ``delegation_confirmation_request_pending`` turning true.

    Parameters
    ----------
    store:
        Shared state store.
    signer:
        Signing agent; a falsy return or a raised error means the
        standard was declined.
    priority:
        Preferred standards, highest first.  Defaults to
        ``settings.SIGNATURE_PRIORITY``.
    """

    def __init__(
        self,
        store: StateStore,
        signer: SigningAgent,
        priority: Sequence[str] | None = None,
    ) -> None:
        self._store = store
        self._signer = signer
        self._priority = list(priority if priority is not None else settings.SIGNATURE_PRIORITY)
        self._tasks: set[asyncio.Task[NegotiationResult]] = set()

    @property
    def priority(self) -> list[str]:
        return list(self._priority)

    @property
    def pending_tasks(self) -> set[asyncio.Task[NegotiationResult]]:
        return set(self._tasks)

    def on_state_changed(self, changed: Iterable[str]) -> Optional[asyncio.Task[NegotiationResult]]:
        """Start a negotiation when the pending flag was just set."""
        if "delegation_confirmation_request_pending" not in set(changed):
            return None

        state = self._store.state
        if state.delegation_confirmation_request_pending is not True:
            return None
        request = state.approved_delegation_request
        if request is None:
            return None
        if self._tasks:
            logger.warning("negotiator.already_negotiating", request_id=request.id)
            return None

        task = asyncio.create_task(self.negotiate(request), name=f"negotiate:{request.id}")
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "negotiator.crashed",
                task=task.get_name(),
                error=repr(task.exception()),
            )

    async def negotiate(self, request: DelegationRequest) -> NegotiationResult:
        """Try each offered standard in priority order until one is signed."""
        candidates = order_by_priority(request.signature_options, self._priority)
        attempted: list[str] = []

        self._store.set(reason="negotiation_started", global_info_message=INFO_PLEASE_SIGN)
        logger.info(
            "negotiator.started",
            request_id=request.id,
            candidates=[o.standard for o in candidates],
        )

        for option in candidates:
            attempted.append(option.standard)
            try:
                signature = await self._signer.sign(
                    self._store.state, option.standard, option.data_to_sign,
                )
            except Exception as exc:
                logger.warning(
                    "negotiator.attempt_failed",
                    request_id=request.id,
                    standard=option.standard,
                    error=str(exc),
                )
                continue

            if not signature:
                logger.info(
                    "negotiator.attempt_declined",
                    request_id=request.id,
                    standard=option.standard,
                )
                continue

            result = DelegationSignature(
                request_id=request.id,
                standard=option.standard,
                signature=signature,
            )
            with self._store.transaction(reason="negotiation_succeeded") as tx:
                tx.set("global_info_message", "")
                tx.set("delegation_signature", result)
            logger.info(
                "negotiator.succeeded",
                request_id=request.id,
                standard=option.standard,
                attempts=len(attempted),
            )
            return NegotiationResult(NegotiationOutcome.SUCCEEDED, attempted, result)

        with self._store.transaction(reason="negotiation_exhausted") as tx:
            tx.set("global_info_message", info_please_sign_again(request.standards))
            tx.set("delegation_confirmation_request_pending", False)
        logger.warning(
            "negotiator.exhausted",
            request_id=request.id,
            attempted=attempted,
        )
        return NegotiationResult(NegotiationOutcome.EXHAUSTED, attempted)

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
