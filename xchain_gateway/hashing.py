"""
Message digest — Keccak-256 over the canonical encoding.

The digest is what every signer signs. Keccak-256 (original padding, as
used by EVM chains) is an interoperability requirement of the network;
it is not the ledger's native SHA-256 and not FIPS SHA3-256.
"""

from __future__ import annotations

from Crypto.Hash import keccak

from xchain_gateway.message import CrossChainMessage, encode_message

DIGEST_BYTES = 32


def keccak256(data: bytes) -> bytes:
    """Keccak-256 digest of ``data`` (32 bytes)."""
    hasher = keccak.new(digest_bits=256)
    hasher.update(data)
    return hasher.digest()


def message_hash(message: CrossChainMessage) -> bytes:
    """Digest of a message: ``keccak256(encode_message(message))``."""
    return keccak256(encode_message(message))
