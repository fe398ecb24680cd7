"""QuoteOutcome — what querying a single backend produced."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from .delegation import BackendDescriptor, DelegationRequest


@dataclass(frozen=True, slots=True)
class Skipped:
    """Descriptor malformed or the function is not supported."""

    url: str
    reason: str


@dataclass(frozen=True, slots=True)
class TransportFailed:
    """POST to the backend failed (network, HTTP status, non-JSON body)."""

    url: str
    error: str


@dataclass(frozen=True, slots=True)
class InvalidShape:
    """Backend answered, but not with a usable delegation request."""

    url: str
    raw_response: Any


@dataclass(frozen=True, slots=True)
class Valid:
    """A usable quote together with the backend that produced it."""

    request: DelegationRequest
    descriptor: BackendDescriptor

    @property
    def url(self) -> str:
        return self.descriptor.url


QuoteOutcome = Union[Skipped, TransportFailed, InvalidShape, Valid]
