"""
Ledger JSON-RPC client — real network implementation of LedgerClient.

Translates JSON-RPC responses into the result dataclasses of client.py.
Uses an injectable transport (JsonRpcTransport) so the HTTP layer can be
swapped for test fakes without changing parsing logic.

No retry loops. No secrets. No protocol logic beyond response parsing.

Response conventions:
    - Success: {"jsonrpc": "2.0", "result": ..., "id": n}
    - Error:   {"jsonrpc": "2.0", "error": {"code", "message", "data"?}, "id": n}
    - Preflight failures of sendTransaction carry the simulated
      execution error and program logs in error.data.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any

from xchain_gateway.client import (
    AccountInfoResult,
    BlockHeightResult,
    BlockhashResult,
    SendResult,
    SignatureStatusResult,
)
from xchain_gateway.config import GatewayConfig
from xchain_gateway.errors import ErrorCode
from xchain_gateway.transport import HttpxTransport, JsonRpcTransport

# JSON-RPC request ID counter (simple, no thread-safety needed for async)
_REQUEST_ID = 0

# Program log lines worth keeping in a failure detail.
_LOG_MARKERS = ("error", "failed", "already in use")


def _next_request_id() -> int:
    global _REQUEST_ID
    _REQUEST_ID += 1
    return _REQUEST_ID


class JsonRpcClient:
    """Ledger JSON-RPC client implementing the LedgerClient protocol.

    Args:
        url: The JSON-RPC endpoint URL (e.g. "https://api.devnet.solana.com").
        transport: Injectable transport for HTTP POST. Defaults to
            HttpxTransport. Pass a FakeTransport for testing.
        commitment: Commitment level for reads and preflight.
    """

    def __init__(
        self,
        url: str,
        transport: JsonRpcTransport | None = None,
        commitment: str = "confirmed",
    ) -> None:
        self._url = url
        self._transport = transport or HttpxTransport()
        self._commitment = commitment

    @classmethod
    def from_config(
        cls,
        url: str,
        config: GatewayConfig,
        transport: JsonRpcTransport | None = None,
    ) -> JsonRpcClient:
        """Client whose reads and preflight use ``config.commitment``.

        The orchestrator waits for the same level, so one setting drives both.
        """
        return cls(url, transport, commitment=config.commitment)

    @property
    def url(self) -> str:
        """The JSON-RPC endpoint URL."""
        return self._url

    @property
    def commitment(self) -> str:
        return self._commitment

    async def _call(self, method: str, params: list[Any]) -> dict[str, Any]:
        payload = {
            "jsonrpc": "2.0",
            "id": _next_request_id(),
            "method": method,
            "params": params,
        }
        return await self._transport.post_json(self._url, payload)

    # -----------------------------------------------------------------
    # LedgerClient protocol methods
    # -----------------------------------------------------------------

    async def get_latest_blockhash(self) -> BlockhashResult:
        response = await self._call(
            "getLatestBlockhash", [{"commitment": self._commitment}]
        )
        return _parse_blockhash_response(response)

    async def send_transaction(self, signed_tx_base64: str) -> SendResult:
        """Send a signed envelope with preflight enabled.

        Transport exceptions propagate to the caller (the orchestrator
        maps them to BACKEND_UNAVAILABLE).
        """
        response = await self._call(
            "sendTransaction",
            [
                signed_tx_base64,
                {
                    "encoding": "base64",
                    "skipPreflight": False,
                    "preflightCommitment": self._commitment,
                },
            ],
        )
        return _parse_send_response(response)

    async def get_signature_status(self, signature: str) -> SignatureStatusResult:
        response = await self._call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": False}],
        )
        return _parse_signature_status_response(response)

    async def get_block_height(self) -> BlockHeightResult:
        response = await self._call(
            "getBlockHeight", [{"commitment": self._commitment}]
        )
        return _parse_block_height_response(response)

    async def get_account_info(self, address: str) -> AccountInfoResult:
        response = await self._call(
            "getAccountInfo",
            [address, {"encoding": "base64", "commitment": self._commitment}],
        )
        return _parse_account_info_response(response)


# =====================================================================
# Response parsing (pure functions, no I/O)
# =====================================================================


def _rpc_error_detail(error: Any) -> str:
    if isinstance(error, dict):
        message = error.get("message") or "unknown RPC error"
        code = error.get("code")
        return f"{message} (code {code})" if code is not None else str(message)
    return str(error)


def _interesting_logs(logs: Any) -> tuple[str, ...]:
    if not isinstance(logs, list):
        return ()
    return tuple(
        line for line in logs
        if isinstance(line, str) and any(m in line.lower() for m in _LOG_MARKERS)
    )


def _parse_blockhash_response(response: dict[str, Any]) -> BlockhashResult:
    if "error" in response:
        return BlockhashResult(
            error_code=str(ErrorCode.SERVER_ERROR),
            detail=_rpc_error_detail(response["error"]),
        )
    value = (response.get("result") or {}).get("value")
    if not isinstance(value, dict) or not value.get("blockhash"):
        return BlockhashResult(
            error_code=str(ErrorCode.SERVER_ERROR),
            detail="no blockhash in getLatestBlockhash response",
        )
    return BlockhashResult(
        blockhash=value["blockhash"],
        last_valid_block_height=value.get("lastValidBlockHeight"),
    )


def _parse_send_response(response: dict[str, Any]) -> SendResult:
    """Parse a sendTransaction response into SendResult.

    Handles:
        - Accepted envelope (result is the signature string)
        - Preflight failure (error.data.err + error.data.logs)
        - Other RPC errors (malformed envelope, node behind, etc.)
    """
    if "error" in response:
        error = response["error"]
        detail = _rpc_error_detail(error)
        data = error.get("data") if isinstance(error, dict) else None
        err = data.get("err") if isinstance(data, dict) else None
        logs = _interesting_logs(data.get("logs")) if isinstance(data, dict) else ()
        if logs:
            detail = f"{detail}; " + "; ".join(logs)
        return SendResult(
            accepted=False,
            error_code=str(
                ErrorCode.EXECUTION_FAILED if err is not None else ErrorCode.SERVER_ERROR
            ),
            detail=detail,
            err=err,
            logs=logs,
        )

    signature = response.get("result")
    if not isinstance(signature, str) or not signature:
        return SendResult(
            accepted=False,
            error_code=str(ErrorCode.SERVER_ERROR),
            detail="no signature in sendTransaction response",
        )
    return SendResult(accepted=True, signature=signature)


def _parse_signature_status_response(response: dict[str, Any]) -> SignatureStatusResult:
    if "error" in response:
        return SignatureStatusResult(
            found=False,
            error_code=str(ErrorCode.SERVER_ERROR),
            detail=_rpc_error_detail(response["error"]),
        )
    values = (response.get("result") or {}).get("value")
    if not isinstance(values, list) or not values or values[0] is None:
        return SignatureStatusResult(found=False)
    status = values[0]
    return SignatureStatusResult(
        found=True,
        confirmation_status=status.get("confirmationStatus"),
        slot=status.get("slot"),
        err=status.get("err"),
    )


def _parse_block_height_response(response: dict[str, Any]) -> BlockHeightResult:
    if "error" in response:
        return BlockHeightResult(
            error_code=str(ErrorCode.SERVER_ERROR),
            detail=_rpc_error_detail(response["error"]),
        )
    height = response.get("result")
    if not isinstance(height, int):
        return BlockHeightResult(
            error_code=str(ErrorCode.SERVER_ERROR),
            detail="no height in getBlockHeight response",
        )
    return BlockHeightResult(height=height)


def _parse_account_info_response(response: dict[str, Any]) -> AccountInfoResult:
    """Parse a getAccountInfo response (base64 encoding)."""
    if "error" in response:
        return AccountInfoResult(
            found=False,
            error_code=str(ErrorCode.SERVER_ERROR),
            detail=_rpc_error_detail(response["error"]),
        )
    value = (response.get("result") or {}).get("value")
    if value is None:
        return AccountInfoResult(found=False)

    raw = value.get("data")
    encoded = raw[0] if isinstance(raw, list) and raw else ""
    try:
        data = base64.b64decode(encoded)
    except (binascii.Error, ValueError) as exc:
        return AccountInfoResult(
            found=True,
            error_code=str(ErrorCode.SERVER_ERROR),
            detail=f"undecodable account data: {exc}",
        )

    return AccountInfoResult(
        found=True,
        executable=bool(value.get("executable", False)),
        owner=value.get("owner"),
        lamports=int(value.get("lamports", 0)),
        data=data,
    )
