"""Tests for data.backend_client — JSON POST and failure mapping."""

from __future__ import annotations

import json

import httpx
import pytest

from core.errors import BackendTransportError
from data.backend_client import BackendClient

URL = "https://relay.example/request"


def _client(handler) -> BackendClient:
    return BackendClient(timeout=1.0, transport=httpx.MockTransport(handler))


class TestBackendClient:

    @pytest.mark.asyncio
    async def test_posts_json_and_decodes(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"request": {"id": "r1"}})

        async with _client(handler) as client:
            result = await client.post_json(URL, {"functionName": "transfer"})

        assert result == {"request": {"id": "r1"}}
        assert seen[0].method == "POST"
        assert str(seen[0].url) == URL
        assert json.loads(seen[0].content) == {"functionName": "transfer"}

    @pytest.mark.asyncio
    async def test_http_error_status(self) -> None:
        async with _client(lambda r: httpx.Response(502, text="bad gateway")) as client:
            with pytest.raises(BackendTransportError) as excinfo:
                await client.post_json(URL, {})
        assert excinfo.value.url == URL
        assert excinfo.value.error == "HTTP 502"

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(BackendTransportError, match="ConnectError"):
                await client.post_json(URL, {})

    @pytest.mark.asyncio
    async def test_non_json_body(self) -> None:
        async with _client(lambda r: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(BackendTransportError, match="not JSON"):
                await client.post_json(URL, {})

    @pytest.mark.asyncio
    async def test_lazy_start_and_idempotent_close(self) -> None:
        client = _client(lambda r: httpx.Response(200, json={}))
        assert await client.post_json(URL, {}) == {}
        await client.close()
        await client.close()
        assert client._client is None
