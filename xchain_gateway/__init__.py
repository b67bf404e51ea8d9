"""
xchain-gateway: client SDK for a cross-chain message gateway.

Public API:

    Pure layer (no I/O):
        - ``CrossChainMessage``, ``encode_message()``, ``decode_message()``
          — canonical message codec.
        - ``keccak256()``, ``message_hash()`` — the digest signers sign.
        - ``VerificationUnit``, ``assemble_verification_instructions()``
          — Ed25519 verification instructions, in signer order.
        - ``AddressResolver`` and the ``*_descriptor()`` functions —
          program-derived addresses.
        - ``instructions`` — one builder per ledger operation.
        - ``plan_submission()`` — ordered, size-checked SubmissionPlan.

    Impure layer (network I/O):
        - ``TransactionOrchestrator`` — retry, backoff, confirmation.
        - ``GatewaySDK`` — one coroutine per operation.

    Protocols (for dependency injection):
        - ``LedgerClient`` — network boundary.
        - ``TransactionSigner`` — secrets boundary.
        - ``JsonRpcTransport`` — HTTP POST boundary.

    Concrete client:
        - ``JsonRpcClient`` with the default ``HttpxTransport``.
"""

__version__ = "0.1.0"

from xchain_gateway.abi import (
    TokenBridgeData,
    decode_token_bridge_data,
    u256_to_u64,
    validate_token_bridge_data,
)
from xchain_gateway.accounts import ABSENT, Absent
from xchain_gateway.addresses import (
    AddressDescriptor,
    AddressResolver,
    RegistryType,
)
from xchain_gateway.client import (
    AccountInfoResult,
    BlockHeightResult,
    BlockhashResult,
    LedgerClient,
    SendResult,
    SignatureStatusResult,
)
from xchain_gateway.config import GatewayConfig, RetryPolicy
from xchain_gateway.constants import (
    AVALANCHE_CHAIN_ID,
    GATEWAY_PROGRAM_ID,
    PACKET_DATA_SIZE,
    SOLANA_CHAIN_ID,
)
from xchain_gateway.errors import (
    NON_RETRYABLE_ERRORS,
    AttemptFailure,
    CompressionTableNotLoaded,
    EnvelopeTooLarge,
    ErrorCode,
    FieldTooLarge,
    InvalidLength,
    LookupTableNotFound,
    NoSignaturesProvided,
    TooManySignatures,
    TrailingBytes,
    TruncatedBuffer,
    classify_failure,
    is_non_retryable,
)
from xchain_gateway.hashing import keccak256, message_hash
from xchain_gateway.jsonrpc_client import JsonRpcClient
from xchain_gateway.message import (
    CrossChainMessage,
    decode_message,
    encode_message,
    validate_message_encoding,
)
from xchain_gateway.orchestrator import (
    SubmissionOutcome,
    SubmissionPlan,
    SubmissionStatus,
    TransactionOrchestrator,
    plan_submission,
)
from xchain_gateway.sdk import GatewaySDK
from xchain_gateway.signatures import (
    EncodingVariant,
    VerificationUnit,
    assemble_verification_instructions,
    create_message_signature,
    sign_digest,
)
from xchain_gateway.signer import TransactionSigner
from xchain_gateway.transport import HttpxTransport, JsonRpcTransport
from xchain_gateway.validation import (
    DecodedMessage,
    validate_decoded_message,
)

__all__ = [
    "ABSENT",
    "AVALANCHE_CHAIN_ID",
    "GATEWAY_PROGRAM_ID",
    "NON_RETRYABLE_ERRORS",
    "PACKET_DATA_SIZE",
    "SOLANA_CHAIN_ID",
    "Absent",
    "AccountInfoResult",
    "AddressDescriptor",
    "AddressResolver",
    "AttemptFailure",
    "BlockHeightResult",
    "BlockhashResult",
    "CompressionTableNotLoaded",
    "CrossChainMessage",
    "DecodedMessage",
    "EncodingVariant",
    "EnvelopeTooLarge",
    "ErrorCode",
    "FieldTooLarge",
    "GatewayConfig",
    "GatewaySDK",
    "HttpxTransport",
    "InvalidLength",
    "JsonRpcClient",
    "JsonRpcTransport",
    "LedgerClient",
    "LookupTableNotFound",
    "NoSignaturesProvided",
    "RegistryType",
    "RetryPolicy",
    "SendResult",
    "SignatureStatusResult",
    "SubmissionOutcome",
    "SubmissionPlan",
    "SubmissionStatus",
    "TokenBridgeData",
    "TooManySignatures",
    "TrailingBytes",
    "TransactionOrchestrator",
    "TransactionSigner",
    "TruncatedBuffer",
    "VerificationUnit",
    "assemble_verification_instructions",
    "classify_failure",
    "create_message_signature",
    "decode_message",
    "decode_token_bridge_data",
    "encode_message",
    "is_non_retryable",
    "keccak256",
    "message_hash",
    "plan_submission",
    "sign_digest",
    "u256_to_u64",
    "validate_decoded_message",
    "validate_message_encoding",
    "validate_token_bridge_data",
]
