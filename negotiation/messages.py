"""User-facing warning and info messages."""

from __future__ import annotations

import json
from typing import Any, Iterable

INFO_PLEASE_SIGN = "Please sign the delegation request in your wallet"

# Response excerpts are cut so one broken backend cannot flood the UI
_MAX_RESPONSE_CHARS = 300


def warning_backend_error(url: str, error: str) -> str:
    return f"Back end {url} failed to respond: {error}"


def warning_backend_invalid_response(url: str, raw_response: Any) -> str:
    try:
        excerpt = json.dumps(raw_response, default=str)
    except (TypeError, ValueError):
        excerpt = repr(raw_response)
    if len(excerpt) > _MAX_RESPONSE_CHARS:
        excerpt = excerpt[:_MAX_RESPONSE_CHARS] + "..."
    return f"Back end {url} returned an invalid response: {excerpt}"


def info_please_sign_again(standards: Iterable[str]) -> str:
    offered = ", ".join(standards)
    return (
        "No signature was produced. The back end accepts these signature "
        f"standards: {offered}. Please sign again or use another wallet."
    )
