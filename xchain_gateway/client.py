"""
Ledger client protocol — the network boundary.

Defines the interface that the orchestrator depends on, not a concrete
implementation. This keeps the orchestrator testable and keeps HTTP out
of submission logic.

Concrete implementations:
    - JsonRpcClient (jsonrpc_client.py)
    - FakeLedgerClient (tests)

All methods return boring frozen dataclasses. No exceptions for
"expected" failures (RPC error objects, preflight rejections, missing
accounts); those are captured in the result objects. Transport
exceptions propagate and are mapped by the orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

# =========================================================================
# Result types
# =========================================================================


@dataclass(frozen=True)
class BlockhashResult:
    """Latest blockhash and the last block height at which it is valid.

    Attributes:
        blockhash: Base58 blockhash. None if the query failed.
        last_valid_block_height: Envelopes bound to ``blockhash`` can no
            longer land once the chain passes this height.
        error_code: Machine-readable error category if the query failed.
        detail: Human-readable detail for diagnostics.
    """

    blockhash: str | None = None
    last_valid_block_height: int | None = None
    error_code: str | None = None
    detail: str | None = None


@dataclass(frozen=True)
class SendResult:
    """Result of sending a signed envelope.

    Attributes:
        accepted: Whether the node accepted the envelope for processing.
            True does NOT mean confirmed, only that preflight passed.
        signature: Base58 transaction signature when accepted.
        error_code: Machine-readable error category when not accepted.
        detail: RPC error text, with the program's own error log lines
            appended when available.
        err: Raw simulated execution error from a failed preflight.
        logs: Program log lines from a failed preflight simulation.
    """

    accepted: bool
    signature: str | None = None
    error_code: str | None = None
    detail: str | None = None
    err: Any = None
    logs: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class SignatureStatusResult:
    """Status of a previously sent envelope.

    Attributes:
        found: Whether the node knows the signature at all.
        confirmation_status: "processed", "confirmed" or "finalized".
        slot: Slot the envelope landed in.
        err: Raw ledger error value if execution failed, else None.
        error_code: Machine-readable error category if the query itself
            failed. None on success.
        detail: Human-readable detail for diagnostics.
    """

    found: bool
    confirmation_status: str | None = None
    slot: int | None = None
    err: Any = None
    error_code: str | None = None
    detail: str | None = None


@dataclass(frozen=True)
class BlockHeightResult:
    """Current block height, or an error."""

    height: int | None = None
    error_code: str | None = None
    detail: str | None = None


@dataclass(frozen=True)
class AccountInfoResult:
    """Raw account read.

    Attributes:
        found: Whether the account exists.
        executable: Whether the account holds a deployed program.
        owner: Base58 owner program id.
        lamports: Account balance.
        data: Raw account bytes (never interpreted here).
        error_code: Machine-readable error category if the query failed.
        detail: Human-readable detail for diagnostics.
    """

    found: bool
    executable: bool = False
    owner: str | None = None
    lamports: int = 0
    data: bytes = b""
    error_code: str | None = None
    detail: str | None = None


# =========================================================================
# Protocol
# =========================================================================


@runtime_checkable
class LedgerClient(Protocol):
    """Interface for ledger network operations.

    Methods are async because network I/O is inherently asynchronous.
    """

    async def get_latest_blockhash(self) -> BlockhashResult:
        """Fetch the latest blockhash and its validity window."""
        ...

    async def send_transaction(self, signed_tx_base64: str) -> SendResult:
        """Send a signed, base64-encoded envelope."""
        ...

    async def get_signature_status(self, signature: str) -> SignatureStatusResult:
        """Query the status of a sent envelope by signature."""
        ...

    async def get_block_height(self) -> BlockHeightResult:
        """Fetch the current block height."""
        ...

    async def get_account_info(self, address: str) -> AccountInfoResult:
        """Fetch raw account bytes and flags for ``address``."""
        ...
