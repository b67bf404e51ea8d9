"""
Tests for HttpxTransport against a mocked HTTP layer.

Test plan:
- POSTs the JSON-RPC payload and returns the parsed body
- Sends Content-Type plus caller-supplied headers
- HTTP error status raises httpx.HTTPStatusError
- Connection failure propagates
"""

import json

import httpx
import pytest
from pytest_httpx import HTTPXMock

from xchain_gateway.transport import HttpxTransport, JsonRpcTransport

URL = "https://rpc.example.com"
PAYLOAD = {"jsonrpc": "2.0", "id": 1, "method": "getBlockHeight", "params": []}


class TestHttpxTransport:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(HttpxTransport(), JsonRpcTransport)

    @pytest.mark.asyncio
    async def test_returns_parsed_body(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            method="POST",
            url=URL,
            json={"jsonrpc": "2.0", "id": 1, "result": 3000},
        )
        result = await HttpxTransport().post_json(URL, PAYLOAD)
        assert result == {"jsonrpc": "2.0", "id": 1, "result": 3000}

    @pytest.mark.asyncio
    async def test_sends_payload_and_headers(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="POST", url=URL, json={"result": None})
        await HttpxTransport(headers={"X-Api-Key": "k"}).post_json(URL, PAYLOAD)

        requests = httpx_mock.get_requests()
        assert len(requests) == 1
        assert json.loads(requests[0].content) == PAYLOAD
        assert requests[0].headers["Content-Type"] == "application/json"
        assert requests[0].headers["X-Api-Key"] == "k"

    @pytest.mark.asyncio
    async def test_http_error_status(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="POST", url=URL, status_code=429, text="Too Many Requests")
        with pytest.raises(httpx.HTTPStatusError):
            await HttpxTransport().post_json(URL, PAYLOAD)

    @pytest.mark.asyncio
    async def test_connection_error(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_exception(httpx.ConnectError("Connection refused"), method="POST", url=URL)
        with pytest.raises(httpx.ConnectError):
            await HttpxTransport().post_json(URL, PAYLOAD)
