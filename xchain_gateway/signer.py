"""
Transaction signer protocol — the secrets boundary.

The orchestrator never sees private keys. It compiles a message, hands
the serialized bytes to the signer, and places the returned signature
in the envelope.

``solders.keypair.Keypair`` satisfies this protocol as-is. Hardware or
remote signers only need ``pubkey()`` and ``sign_message()``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from solders.pubkey import Pubkey
from solders.signature import Signature


@runtime_checkable
class TransactionSigner(Protocol):
    """Interface for fee-payer signing.

    The signer's public key is the fee payer and the only required
    signer of every envelope the orchestrator builds.
    """

    def pubkey(self) -> Pubkey:
        """Public key of the fee payer (safe for logging)."""
        ...

    def sign_message(self, message: bytes) -> Signature:
        """Sign serialized message bytes.

        Args:
            message: Output of ``solders.message.to_bytes_versioned``.

        Returns:
            64-byte Ed25519 signature.
        """
        ...
