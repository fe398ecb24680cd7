"""Typed errors raised at the transport and signing seams."""

from __future__ import annotations


class DelegationError(Exception):
    """Base class for delegation negotiation errors."""


class BackendTransportError(DelegationError):
    """Raised when a backend cannot be reached or answers with garbage.

    Covers connection failures, timeouts, non-2xx statuses and bodies
    that are not JSON.
    """

    def __init__(self, url: str, error: str) -> None:
        super().__init__(f"{url}: {error}")
        self.url = url
        self.error = error


class SigningError(DelegationError):
    """Raised when a payload cannot be signed under the requested standard."""

    def __init__(self, standard: str, message: str) -> None:
        super().__init__(f"{standard}: {message}")
        self.standard = standard


class SignerNotStartedError(RuntimeError):
    """Raised when signing is attempted before the signer pool is started."""
