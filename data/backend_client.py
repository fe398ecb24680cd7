"""BackendClient — async JSON-over-HTTP client for relayer backends.

Thin wrapper over ``httpx.AsyncClient``.  Every failure mode a caller
cares about (connect error, timeout, non-2xx status, undecodable body)
surfaces as :class:`core.errors.BackendTransportError` so the quote
aggregator can classify it without knowing about httpx.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from config.settings import settings
from core.errors import BackendTransportError

logger = structlog.get_logger("data.backend_client")


class BackendClient:
    """Async HTTP client shared by all quote requests of an engine.

    Parameters
    ----------
    timeout:
        Per-request timeout in seconds.
    transport:
        Optional httpx transport (``httpx.MockTransport`` in tests).
    headers:
        Extra headers sent with every request.
    """

    def __init__(
        self,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._timeout = timeout if timeout is not None else settings.BACKEND_REQUEST_TIMEOUT_SECONDS
        self._transport = transport
        self._headers = {"Accept": "application/json", **(headers or {})}
        self._client: httpx.AsyncClient | None = None

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        """Open the underlying connection pool.  Idempotent."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
                headers=self._headers,
            )
            logger.debug("backend_client.started", timeout_s=self._timeout)

    async def close(self) -> None:
        """Close the connection pool.  Idempotent."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("backend_client.closed")

    # ── Requests ─────────────────────────────────────────────────

    async def post_json(self, url: str, body: dict[str, Any]) -> Any:
        """POST *body* as JSON to *url* and return the decoded response.

        Raises
        ------
        BackendTransportError
            On any network error, non-2xx status or non-JSON body.
        """
        if self._client is None:
            await self.start()
        assert self._client is not None

        try:
            response = await self._client.post(url, json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise BackendTransportError(
                url, f"HTTP {exc.response.status_code}",
            ) from exc
        except httpx.HTTPError as exc:
            raise BackendTransportError(url, f"{type(exc).__name__}: {exc}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise BackendTransportError(url, "response body is not JSON") from exc

    # ── Context manager ──────────────────────────────────────────

    async def __aenter__(self) -> BackendClient:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()
