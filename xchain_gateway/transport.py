"""
Transport protocol for ledger JSON-RPC calls.

Defines the seam where concrete HTTP implementations plug in. The
JSON-RPC client depends on this protocol, not on httpx directly, so the
transport can be swapped without editing client logic.

Concrete implementations:
    - HttpxTransport (default, uses httpx.AsyncClient)
    - FakeTransport (tests, returns canned responses)
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx


@runtime_checkable
class JsonRpcTransport(Protocol):
    """Async transport for JSON-RPC POST requests."""

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Send a JSON-RPC request and return the parsed response.

        Args:
            url: The JSON-RPC endpoint URL.
            payload: The JSON-RPC request body (jsonrpc, id, method, params).

        Returns:
            Parsed JSON response as a dict.

        Raises:
            Exception: On transport-level failures (connection refused,
                timeout, TLS error, HTTP error status). The orchestrator
                maps these to BACKEND_UNAVAILABLE.
        """
        ...


class HttpxTransport:
    """Default transport using httpx.AsyncClient.

    Args:
        timeout: Per-request timeout in seconds.
        headers: Extra headers sent with every request (e.g. an API key
            for a hosted RPC provider).
    """

    def __init__(
        self,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._timeout = timeout
        self._headers = {"Content-Type": "application/json", **(headers or {})}

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Send JSON-RPC request via httpx."""
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(url, json=payload, headers=self._headers)
            response.raise_for_status()
            result: dict[str, Any] = response.json()
            return result
