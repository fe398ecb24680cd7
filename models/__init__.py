"""metatx-client — models package."""

from .delegation import (
    BackendDescriptor,
    DelegationRequest,
    DelegationSignature,
    QuoteRequestParams,
    SignatureOption,
)
from .outcome import InvalidShape, QuoteOutcome, Skipped, TransportFailed, Valid
from .state import DelegationState, input_warning

__all__ = [
    "BackendDescriptor",
    "DelegationRequest",
    "DelegationSignature",
    "DelegationState",
    "InvalidShape",
    "QuoteOutcome",
    "QuoteRequestParams",
    "SignatureOption",
    "Skipped",
    "TransportFailed",
    "Valid",
    "input_warning",
]
