"""metatx-client — quote aggregation and signature negotiation.

Two reactions over the shared :class:`core.state_store.StateStore`:

- BackendQuoteAggregator: best-of-N quote selection across relayers.
- SignatureNegotiator: ordered fallback across signature standards.
"""

from .aggregator import BackendQuoteAggregator, RoundResolution, resolve_round, select_best
from .negotiator import (
    NegotiationOutcome,
    NegotiationResult,
    SignatureNegotiator,
    order_by_priority,
)

__all__ = [
    "BackendQuoteAggregator",
    "NegotiationOutcome",
    "NegotiationResult",
    "RoundResolution",
    "SignatureNegotiator",
    "order_by_priority",
    "resolve_round",
    "select_best",
]
