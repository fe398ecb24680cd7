"""BackendQuoteAggregator — fan out quote requests and approve the cheapest.

A round queries every known backend concurrently, classifies each answer
as a :mod:`models.outcome` value and then resolves the whole set at once:
the minimum-fee valid quote is approved, otherwise a single warning is
surfaced.  Individual backend failures never abort a round.

Rounds are single-flight per contract address: once a round starts,
further triggers are ignored until ``contract_address`` changes.  An
address change also bumps the request epoch; a round whose epoch is no
longer current drops its results instead of writing them.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

import structlog
from pydantic import ValidationError

from core.errors import BackendTransportError
from core.state_store import StateStore
from models.delegation import BackendDescriptor, DelegationRequest, QuoteRequestParams
from models.outcome import InvalidShape, QuoteOutcome, Skipped, TransportFailed, Valid
from models.state import DelegationState
from negotiation.messages import warning_backend_error, warning_backend_invalid_response

logger = structlog.get_logger("negotiation.aggregator")

# Commits touching any of these may (re)start a round
QUOTE_TRIGGER_FIELDS = frozenset({
    "warning_message_read_only",
    "contract_address",
    "function_name",
    "function_arguments",
    "current_ethereum_account",
    "target_network",
})

DescriptorSource = Callable[[DelegationState], Sequence[Any]]


class QuoteTransport(Protocol):
    async def post_json(self, url: str, body: dict[str, Any]) -> Any: ...


# ── Pure classification / resolution ────────────────────────────────


def classify_descriptor(raw: Any, function_name: str) -> BackendDescriptor | Skipped:
    """Validate a raw descriptor and check it supports *function_name*."""
    url = str(raw.get("url") or "?") if isinstance(raw, Mapping) else "?"
    try:
        descriptor = BackendDescriptor.model_validate(raw)
    except ValidationError as exc:
        return Skipped(url=url, reason=f"malformed descriptor: {exc.error_count()} error(s)")
    if not descriptor.supports(function_name):
        return Skipped(url=descriptor.url, reason=f"function {function_name!r} not supported")
    return descriptor


def classify_response(raw: Any, descriptor: BackendDescriptor) -> Valid | InvalidShape:
    """Turn a decoded ``/request`` response into an outcome."""
    body = raw.get("request") if isinstance(raw, Mapping) else None
    if not isinstance(body, Mapping):
        return InvalidShape(url=descriptor.url, raw_response=raw)
    # meta is ours: it names the approving descriptor, never backend input
    body = {k: v for k, v in body.items() if k != "meta"}
    try:
        request = DelegationRequest.model_validate(body)
    except ValidationError:
        return InvalidShape(url=descriptor.url, raw_response=raw)
    return Valid(request=request, descriptor=descriptor)


def select_best(outcomes: Iterable[QuoteOutcome]) -> Optional[Valid]:
    """Minimum-fee valid outcome; the first one seen wins ties."""
    best: Optional[Valid] = None
    for outcome in outcomes:
        if not isinstance(outcome, Valid):
            continue
        if best is None or outcome.request.fee < best.request.fee:
            best = outcome
    return best


@dataclass(frozen=True)
class RoundResolution:
    """Writes produced by one aggregation round."""

    approved: Optional[DelegationRequest] = None
    warning: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.approved is not None

    def writes(self) -> dict[str, Any]:
        if self.approved is not None:
            return {
                "backend_warning_message": None,
                "approved_delegation_request": self.approved,
            }
        if self.warning is not None:
            return {"backend_warning_message": self.warning}
        return {}


def resolve_round(
    outcomes: Sequence[QuoteOutcome],
    backend_warning_written: bool = False,
) -> RoundResolution:
    """Decide what a finished round writes.

    Parameters
    ----------
    outcomes:
        One outcome per descriptor, in descriptor order.
    backend_warning_written:
        Whether an invalid-response warning was already surfaced during
        the round; it then stands and no generic warning replaces it.
    """
    best = select_best(outcomes)
    if best is not None:
        return RoundResolution(approved=best.request.approved_from(best.descriptor))

    if backend_warning_written:
        return RoundResolution()

    failures = [o for o in outcomes if isinstance(o, TransportFailed)]
    if failures:
        return RoundResolution(warning=warning_backend_error(failures[0].url, failures[0].error))
    return RoundResolution(warning=warning_backend_error("*", "no backend responded"))


# ── Aggregator ──────────────────────────────────────────────────────


class _Round:
    """Mutable bookkeeping for one in-flight round."""

    __slots__ = ("epoch", "backend_warning_written")

    def __init__(self, epoch: int) -> None:
        self.epoch = epoch
        self.backend_warning_written = False


class BackendQuoteAggregator:
    """Reacts to store changes by soliciting quotes from every backend.

    Parameters
    ----------
    store:
        Shared state store; read for inputs, written with the outcome.
    transport:
        Anything with ``async post_json(url, body)``; must raise on
        transport failure.
    descriptors:
        Callable returning the current backend descriptors for a state.
    """

    def __init__(
        self,
        store: StateStore,
        transport: QuoteTransport,
        descriptors: DescriptorSource,
    ) -> None:
        self._store = store
        self._transport = transport
        self._descriptors = descriptors
        self._requested = False
        self._epoch = 0
        self._tasks: set[asyncio.Task[Optional[RoundResolution]]] = set()

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def requested(self) -> bool:
        """True once a round started for the current contract address."""
        return self._requested

    @property
    def pending_tasks(self) -> set[asyncio.Task[Optional[RoundResolution]]]:
        return set(self._tasks)

    # ── Trigger ──────────────────────────────────────────────────

    def on_state_changed(self, changed: Iterable[str]) -> Optional[asyncio.Task[Optional[RoundResolution]]]:
        """Start a round if this commit calls for one.

        Must run on the event loop; returns the round task, or ``None``
        when the trigger is suppressed.
        """
        changed = set(changed)
        if "contract_address" in changed:
            self._requested = False
            self._epoch += 1

        if not changed & QUOTE_TRIGGER_FIELDS:
            return None

        state = self._store.state
        if state.warning_message_read_only or self._requested:
            return None

        self._requested = True
        params = QuoteRequestParams(
            contract_address=state.contract_address,
            signer=state.current_ethereum_account,
            function_name=state.function_name,
            function_arguments=list(state.function_arguments),
        )
        task = asyncio.create_task(
            self.run_round(params, state, self._epoch),
            name=f"quote_round:{self._epoch}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "aggregator.round_crashed",
                task=task.get_name(),
                error=repr(task.exception()),
            )

    # ── Round ────────────────────────────────────────────────────

    async def run_round(
        self,
        params: QuoteRequestParams,
        state: DelegationState,
        epoch: int,
    ) -> Optional[RoundResolution]:
        """Query all backends and write the outcome.

        Returns the resolution, or ``None`` if the round went stale.
        """
        descriptors = list(self._descriptors(state))
        rnd = _Round(epoch)
        logger.info(
            "aggregator.round_started",
            epoch=epoch,
            contract=params.contract_address,
            function=params.function_name,
            backends=len(descriptors),
        )

        outcomes: list[QuoteOutcome] = list(
            await asyncio.gather(*(self._query(raw, params, rnd) for raw in descriptors))
        )

        if epoch != self._epoch:
            logger.info("aggregator.round_stale", epoch=epoch, current_epoch=self._epoch)
            return None

        resolution = resolve_round(outcomes, rnd.backend_warning_written)
        writes = resolution.writes()
        if writes:
            with self._store.transaction(reason="quote_round") as tx:
                tx.update(**writes)

        if resolution.approved is not None:
            logger.info(
                "aggregator.quote_approved",
                epoch=epoch,
                request_id=resolution.approved.id,
                fee=str(resolution.approved.fee),
                backend=resolution.approved.meta.url if resolution.approved.meta else None,
                valid_quotes=sum(isinstance(o, Valid) for o in outcomes),
            )
        else:
            logger.warning(
                "aggregator.no_valid_quotes",
                epoch=epoch,
                skipped=sum(isinstance(o, Skipped) for o in outcomes),
                transport_failed=sum(isinstance(o, TransportFailed) for o in outcomes),
                invalid=sum(isinstance(o, InvalidShape) for o in outcomes),
            )
        return resolution

    async def _query(self, raw: Any, params: QuoteRequestParams, rnd: _Round) -> QuoteOutcome:
        descriptor = classify_descriptor(raw, params.function_name)
        if isinstance(descriptor, Skipped):
            logger.warning("aggregator.backend_skipped", url=descriptor.url, reason=descriptor.reason)
            return descriptor

        try:
            response = await self._transport.post_json(descriptor.request_url, params.to_wire())
        except BackendTransportError as exc:
            logger.warning("aggregator.backend_failed", url=descriptor.url, error=exc.error)
            return TransportFailed(url=descriptor.url, error=exc.error)
        except Exception as exc:
            logger.warning("aggregator.backend_failed", url=descriptor.url, error=repr(exc))
            return TransportFailed(url=descriptor.url, error=str(exc) or type(exc).__name__)

        outcome = classify_response(response, descriptor)
        if isinstance(outcome, InvalidShape):
            logger.warning("aggregator.backend_invalid_response", url=descriptor.url)
            self._surface_invalid(outcome, rnd)
        return outcome

    def _surface_invalid(self, outcome: InvalidShape, rnd: _Round) -> None:
        # First invalid response of a round wins; stale rounds write nothing
        if rnd.backend_warning_written or rnd.epoch != self._epoch:
            return
        rnd.backend_warning_written = True
        self._store.set(
            reason="quote_invalid_response",
            backend_warning_message=warning_backend_invalid_response(
                outcome.url, outcome.raw_response,
            ),
        )

    async def wait_idle(self) -> None:
        """Wait for every in-flight round to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
