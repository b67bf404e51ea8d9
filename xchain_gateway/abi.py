"""
Token bridge payload decoding.

The onChainData of a token bridge message is Solidity
``abi.encode(bytes32 recipient, uint256 amount, bytes32 tokenMint)``:

    bytes  0..32   recipient token account
    bytes 32..64   amount, uint256 big-endian
    bytes 64..96   token mint

Amounts must fit in u64 (SPL token amounts). Trailing bytes beyond 96
are ignored, matching the receiving program's decoder.
"""

from __future__ import annotations

from dataclasses import dataclass

from solders.pubkey import Pubkey

TOKEN_BRIDGE_DATA_BYTES = 96
UINT256_BYTES = 32


@dataclass(frozen=True)
class TokenBridgeData:
    recipient: Pubkey
    amount: int
    token_mint: Pubkey


def u256_to_u64(value: bytes) -> int:
    """Convert a big-endian uint256 to an int that fits in u64.

    Raises:
        ValueError: If ``value`` is not 32 bytes or any of its high
            24 bytes is non-zero.
    """
    if len(value) != UINT256_BYTES:
        raise ValueError(
            f"invalid uint256 size: expected {UINT256_BYTES} bytes, got {len(value)}"
        )
    for index, byte in enumerate(value[:24]):
        if byte:
            raise ValueError(
                f"amount overflow: uint256 exceeds u64 max, byte {index} is {byte:#04x}"
            )
    return int.from_bytes(value[24:], "big")


def decode_token_bridge_data(on_chain_data: bytes) -> TokenBridgeData:
    """Decode recipient, amount and mint from a token bridge payload.

    Raises:
        ValueError: If the payload is shorter than 96 bytes or the amount
            overflows u64.
    """
    if len(on_chain_data) < TOKEN_BRIDGE_DATA_BYTES:
        raise ValueError(
            f"invalid onChainData size: expected at least {TOKEN_BRIDGE_DATA_BYTES} "
            f"bytes, got {len(on_chain_data)}"
        )
    return TokenBridgeData(
        recipient=Pubkey.from_bytes(bytes(on_chain_data[0:32])),
        amount=u256_to_u64(bytes(on_chain_data[32:64])),
        token_mint=Pubkey.from_bytes(bytes(on_chain_data[64:96])),
    )


def validate_token_bridge_data(data: TokenBridgeData) -> None:
    """Raise ValueError unless recipient and mint are set and amount > 0."""
    if data.recipient == Pubkey.default():
        raise ValueError("invalid recipient: cannot be default pubkey")
    if data.amount <= 0:
        raise ValueError(f"invalid amount: must be positive, got {data.amount}")
    if data.token_mint == Pubkey.default():
        raise ValueError("invalid token mint: cannot be default pubkey")
