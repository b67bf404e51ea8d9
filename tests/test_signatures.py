"""
Tests for the signature assembler.

Test plan:
- Ed25519 vector: fixed seed signs the reference digest to a literal
  signature; the unit carries the raw public key
- Instruction layout: program id, no accounts, header offsets, key,
  signature and digest at their offsets
- Ordering: [A, B] yields A's instruction first; swapping swaps
- Caps: empty list rejected; compact allows 3 and rejects 4; standard
  has no unit cap
- VerificationUnit length checks
"""

import struct

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from xchain_gateway.constants import AVALANCHE_CHAIN_ID, SOLANA_CHAIN_ID
from xchain_gateway.errors import InvalidLength, NoSignaturesProvided, TooManySignatures
from xchain_gateway.hashing import message_hash
from xchain_gateway.message import CrossChainMessage
from xchain_gateway.signatures import (
    ED25519_PROGRAM_ID,
    MAX_COMPACT_SIGNATURES,
    EncodingVariant,
    VerificationUnit,
    assemble_verification_instructions,
    build_ed25519_instruction,
    create_message_signature,
    sign_digest,
)

ON_CHAIN_DATA = b"\x11" * 32 + (1000).to_bytes(32, "big") + b"\x22" * 32

SEED_KEY = Ed25519PrivateKey.from_private_bytes(b"\x01" * 32)
SEED_PUBLIC_KEY = "8a88e3dd7409f195fd52db2d3cba5d72ca6709bf1d94121bf3748801b40f6f5c"
SEED_PUBKEY_BASE58 = "AKnL4NNf3DGWZJS6cPknBuEGnVsV4A4m5tgebLHaRSZ9"
REFERENCE_SIGNATURE = (
    "861adbea92875664ad7a48f07a0d7938c2d25985bb25824d47219f93ebd7ad40"
    "094eacabea0c254a39a60fc56da55b6252e7ab900e3bba685bbe30064d6f5306"
)


def _reference_message() -> CrossChainMessage:
    return CrossChainMessage(
        tx_id=1,
        source_chain_id=AVALANCHE_CHAIN_ID,
        dest_chain_id=SOLANA_CHAIN_ID,
        sender=bytes(20),
        recipient=bytes(32),
        on_chain_data=ON_CHAIN_DATA,
    )


def _unit(tag: int) -> VerificationUnit:
    return VerificationUnit(signature=bytes([tag]) * 64, signer_key=bytes([tag]) * 32)


# ---------------------------------------------------------------------------
# Signing vector
# ---------------------------------------------------------------------------


class TestSigningVector:
    def test_reference_signature(self) -> None:
        signature = sign_digest(message_hash(_reference_message()), SEED_KEY)
        assert signature.hex() == REFERENCE_SIGNATURE

    def test_create_message_signature_unit(self) -> None:
        unit = create_message_signature(_reference_message(), SEED_KEY)
        assert unit.signer_key.hex() == SEED_PUBLIC_KEY
        assert unit.signature.hex() == REFERENCE_SIGNATURE
        assert str(unit.signer) == SEED_PUBKEY_BASE58

    def test_signature_verifies(self) -> None:
        unit = create_message_signature(_reference_message(), SEED_KEY)
        public_key = Ed25519PublicKey.from_public_bytes(unit.signer_key)
        public_key.verify(unit.signature, message_hash(_reference_message()))

    def test_sign_digest_rejects_wrong_length(self) -> None:
        with pytest.raises(InvalidLength):
            sign_digest(b"\x00" * 31, SEED_KEY)


# ---------------------------------------------------------------------------
# Instruction layout
# ---------------------------------------------------------------------------


class TestInstructionLayout:
    def test_program_and_accounts(self) -> None:
        digest = message_hash(_reference_message())
        instruction = build_ed25519_instruction(_unit(1), digest)
        assert instruction.program_id == ED25519_PROGRAM_ID
        assert list(instruction.accounts) == []

    def test_header(self) -> None:
        digest = message_hash(_reference_message())
        data = bytes(build_ed25519_instruction(_unit(1), digest).data)
        assert data[:16].hex() == "01003000ffff1000ffff70002000ffff"
        fields = struct.unpack("<BBHHHHHHH", data[:16])
        assert fields == (1, 0, 48, 0xFFFF, 16, 0xFFFF, 112, 32, 0xFFFF)

    def test_payload_offsets(self) -> None:
        unit = create_message_signature(_reference_message(), SEED_KEY)
        digest = message_hash(_reference_message())
        data = bytes(build_ed25519_instruction(unit, digest).data)
        assert len(data) == 16 + 32 + 64 + 32
        assert data[16:48] == unit.signer_key
        assert data[48:112] == unit.signature
        assert data[112:144] == digest

    def test_rejects_short_digest(self) -> None:
        with pytest.raises(InvalidLength):
            build_ed25519_instruction(_unit(1), b"\x00" * 20)


# ---------------------------------------------------------------------------
# Ordering and caps
# ---------------------------------------------------------------------------


class TestAssembly:
    def test_order_preserved(self) -> None:
        a, b = _unit(0xA), _unit(0xB)
        instructions = assemble_verification_instructions(_reference_message(), [a, b])
        assert bytes(instructions[0].data)[16:48] == a.signer_key
        assert bytes(instructions[1].data)[16:48] == b.signer_key

    def test_swapping_input_swaps_output(self) -> None:
        a, b = _unit(0xA), _unit(0xB)
        forward = assemble_verification_instructions(_reference_message(), [a, b])
        reverse = assemble_verification_instructions(_reference_message(), [b, a])
        assert [bytes(i.data) for i in forward] == [bytes(i.data) for i in reversed(reverse)]

    def test_every_unit_over_the_same_digest(self) -> None:
        digest = message_hash(_reference_message())
        instructions = assemble_verification_instructions(
            _reference_message(), [_unit(1), _unit(2), _unit(3)]
        )
        assert all(bytes(i.data)[112:] == digest for i in instructions)

    def test_empty_rejected(self) -> None:
        with pytest.raises(NoSignaturesProvided):
            assemble_verification_instructions(_reference_message(), [])

    def test_compact_allows_three(self) -> None:
        units = [_unit(i) for i in range(MAX_COMPACT_SIGNATURES)]
        instructions = assemble_verification_instructions(
            _reference_message(), units, EncodingVariant.COMPACT
        )
        assert len(instructions) == 3

    def test_compact_rejects_four(self) -> None:
        units = [_unit(i) for i in range(4)]
        with pytest.raises(TooManySignatures) as exc_info:
            assemble_verification_instructions(
                _reference_message(), units, EncodingVariant.COMPACT
            )
        assert exc_info.value.count == 4
        assert exc_info.value.maximum == 3

    def test_standard_has_no_unit_cap(self) -> None:
        units = [_unit(i) for i in range(5)]
        instructions = assemble_verification_instructions(
            _reference_message(), units, EncodingVariant.STANDARD
        )
        assert len(instructions) == 5

    def test_variant_caps(self) -> None:
        assert EncodingVariant.COMPACT.max_verification_units == 3
        assert EncodingVariant.STANDARD.max_verification_units is None


class TestVerificationUnit:
    def test_short_signature_rejected(self) -> None:
        with pytest.raises(InvalidLength, match="signature"):
            VerificationUnit(signature=b"\x00" * 63, signer_key=b"\x00" * 32)

    def test_long_key_rejected(self) -> None:
        with pytest.raises(InvalidLength, match="signer_key"):
            VerificationUnit(signature=b"\x00" * 64, signer_key=b"\x00" * 33)
