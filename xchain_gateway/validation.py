"""
Checks for the decoded-message record a client program stores.

A client program receiving a message by CPI stores a DecodedMessage at
``["decoded", txId]`` and later executes it. These helpers let an
operator check such a record, and the caller of decode_and_store,
before acting on them. All raise ValueError on failure.
"""

from __future__ import annotations

from dataclasses import dataclass

from solders.pubkey import Pubkey

from xchain_gateway.message import U64_MAX


@dataclass(frozen=True)
class DecodedMessage:
    """Client-side view of a stored decoded message.

    Attributes:
        tx_id: Transaction id of the originating message.
        sender: Source-chain sender, 32 bytes.
        dest_chain_id: Destination chain id as a decimal string.
        recipient: Token recipient.
        amount: Token amount (u64).
        token_mint: Token mint.
        gateway_authority: Program that created the record.
        created_at: Unix timestamp of creation.
        bump: Bump of the record's address.
    """

    tx_id: int
    sender: bytes
    dest_chain_id: str
    recipient: Pubkey
    amount: int
    token_mint: Pubkey
    gateway_authority: Pubkey
    created_at: int = 0
    bump: int = 0


def validate_gateway_authority(provided: Pubkey, expected_gateway_program_id: Pubkey) -> None:
    if provided != expected_gateway_program_id:
        raise ValueError(
            f"invalid gateway authority: expected {expected_gateway_program_id}, "
            f"got {provided}; the record was not created by the gateway"
        )


def validate_amount(amount: int) -> None:
    if amount == 0:
        raise ValueError("amount cannot be zero")
    if amount < 0:
        raise ValueError("amount cannot be negative")
    if amount > U64_MAX:
        raise ValueError(f"amount overflow: {amount} exceeds u64 max ({U64_MAX})")


def validate_public_key(key: Pubkey, field_name: str) -> None:
    if key == Pubkey.default():
        raise ValueError(f"invalid {field_name}: cannot be default pubkey ({key})")


def validate_decoded_message(decoded: DecodedMessage, expected_gateway_program_id: Pubkey) -> None:
    """Run every record check; the gateway authority is checked first."""
    validate_gateway_authority(decoded.gateway_authority, expected_gateway_program_id)
    validate_amount(decoded.amount)
    validate_public_key(decoded.recipient, "recipient")
    validate_public_key(decoded.token_mint, "tokenMint")
    if decoded.tx_id <= 0:
        raise ValueError("invalid txId: must be positive")
    if not decoded.dest_chain_id or not decoded.dest_chain_id.strip():
        raise ValueError("invalid destChainId: cannot be empty")
    if len(decoded.sender) != 32:
        raise ValueError(f"invalid sender: must be 32 bytes, got {len(decoded.sender)}")


def validate_decode_and_store_caller(
    caller_program_id: Pubkey, expected_gateway_program_id: Pubkey
) -> None:
    """decode_and_store may only be invoked by the gateway."""
    if caller_program_id != expected_gateway_program_id:
        raise ValueError(
            "unauthorized caller: decode_and_store can only be called by the gateway; "
            f"expected {expected_gateway_program_id}, got {caller_program_id}"
        )
