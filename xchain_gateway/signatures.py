"""
Signature assembler — verification units and Ed25519 verify instructions.

The verifying program does not take signatures as arguments. It scans
the instructions that precede it in the same transaction and picks up
every native Ed25519 verification instruction positionally. So this
module:

    1. re-derives the message digest,
    2. packages each (signature, signer key) pair as one
       Ed25519SigVerify instruction over that digest,
    3. returns them in exactly the order the caller supplied.

Signature correctness is never checked here. The ledger's Ed25519
program and the verifying program do that.

Instruction data layout (single signature, all offsets u16 LE):

    0   num_signatures = 1, padding = 0
    2   signature_offset = 48,  signature_instruction_index = 0xFFFF
    6   public_key_offset = 16, public_key_instruction_index = 0xFFFF
    10  message_data_offset = 112, message_data_size = len(digest),
        message_instruction_index = 0xFFFF
    16  public key (32 bytes)
    48  signature (64 bytes)
    112 message (the 32-byte digest)

0xFFFF means "this instruction", so every unit is self-contained.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import StrEnum
from typing import Sequence

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from solders.instruction import Instruction
from solders.pubkey import Pubkey

from xchain_gateway.errors import InvalidLength, NoSignaturesProvided, TooManySignatures
from xchain_gateway.hashing import DIGEST_BYTES, message_hash
from xchain_gateway.message import CrossChainMessage

ED25519_PROGRAM_ID = Pubkey.from_string("Ed25519SigVerify111111111111111111111111111")

SIGNATURE_BYTES = 64
PUBLIC_KEY_BYTES = 32

# Compact envelopes still pay full price for each verify instruction.
MAX_COMPACT_SIGNATURES = 3

_HEADER = struct.Struct("<BBHHHHHHH")
_THIS_INSTRUCTION = 0xFFFF
_PUBLIC_KEY_OFFSET = _HEADER.size
_SIGNATURE_OFFSET = _PUBLIC_KEY_OFFSET + PUBLIC_KEY_BYTES
_MESSAGE_OFFSET = _SIGNATURE_OFFSET + SIGNATURE_BYTES


class EncodingVariant(StrEnum):
    """Envelope encoding for a submission."""

    STANDARD = "standard"
    COMPACT = "compact"

    @property
    def max_verification_units(self) -> int | None:
        """Hard cap on verification units, or None if only the packet limit applies."""
        if self is EncodingVariant.COMPACT:
            return MAX_COMPACT_SIGNATURES
        return None


@dataclass(frozen=True)
class VerificationUnit:
    """One signer's attestation over a message digest.

    Attributes:
        signature: 64-byte Ed25519 signature.
        signer_key: 32-byte Ed25519 public key.
    """

    signature: bytes
    signer_key: bytes

    def __post_init__(self) -> None:
        if len(self.signature) != SIGNATURE_BYTES:
            raise InvalidLength("signature", len(self.signature), SIGNATURE_BYTES)
        if len(self.signer_key) != PUBLIC_KEY_BYTES:
            raise InvalidLength("signer_key", len(self.signer_key), PUBLIC_KEY_BYTES)

    @property
    def signer(self) -> Pubkey:
        return Pubkey.from_bytes(self.signer_key)


# =========================================================================
# Signing helpers
# =========================================================================


def sign_digest(digest: bytes, private_key: Ed25519PrivateKey) -> bytes:
    """Ed25519-sign a 32-byte digest."""
    if len(digest) != DIGEST_BYTES:
        raise InvalidLength("digest", len(digest), DIGEST_BYTES)
    return private_key.sign(digest)


def create_message_signature(
    message: CrossChainMessage,
    private_key: Ed25519PrivateKey,
) -> VerificationUnit:
    """Hash ``message`` and sign the digest with ``private_key``."""
    signer_key = private_key.public_key().public_bytes(
        encoding=Encoding.Raw,
        format=PublicFormat.Raw,
    )
    return VerificationUnit(
        signature=sign_digest(message_hash(message), private_key),
        signer_key=signer_key,
    )


# =========================================================================
# Instruction assembly
# =========================================================================


def build_ed25519_instruction(unit: VerificationUnit, digest: bytes) -> Instruction:
    """Build the native Ed25519 verify instruction for one unit."""
    if len(digest) != DIGEST_BYTES:
        raise InvalidLength("digest", len(digest), DIGEST_BYTES)
    header = _HEADER.pack(
        1,
        0,
        _SIGNATURE_OFFSET,
        _THIS_INSTRUCTION,
        _PUBLIC_KEY_OFFSET,
        _THIS_INSTRUCTION,
        _MESSAGE_OFFSET,
        len(digest),
        _THIS_INSTRUCTION,
    )
    data = header + unit.signer_key + unit.signature + digest
    return Instruction(ED25519_PROGRAM_ID, data, [])


def assemble_verification_instructions(
    message: CrossChainMessage,
    units: Sequence[VerificationUnit],
    variant: EncodingVariant = EncodingVariant.STANDARD,
) -> list[Instruction]:
    """Package verification units as instructions, preserving order.

    Args:
        message: The message every unit was computed over.
        units: Signers in the order they must appear.
        variant: Encoding variant whose cap applies.

    Returns:
        One instruction per unit, in input order.

    Raises:
        NoSignaturesProvided: If ``units`` is empty.
        TooManySignatures: If ``units`` exceeds the variant's cap.
    """
    if not units:
        raise NoSignaturesProvided()
    cap = variant.max_verification_units
    if cap is not None and len(units) > cap:
        raise TooManySignatures(len(units), cap, str(variant))

    digest = message_hash(message)
    return [build_ed25519_instruction(unit, digest) for unit in units]
