"""
Error taxonomy — local exceptions, outcome codes, and retry classification.

Two channels, never mixed:

    Local failures (raised):
        Validation and construction problems detected before anything
        touches the network. They are ValueError subclasses so callers
        that already guard builder input with ``except ValueError`` keep
        working. They are never retried.

    Network and ledger failures (returned):
        Everything that happens after the first RPC call is captured as
        an ``AttemptFailure`` value inside a SubmissionOutcome. The
        retryable/fatal decision is made once, when the value is built,
        and travels with it.

Non-retryable vocabulary:
    The verifying program reports semantic rejections as text (program
    log lines, rendered custom errors). ``NON_RETRYABLE_ERRORS`` is the
    fixed table of case-insensitive substrings that mark such a
    rejection. Matching is a stopgap for a missing structured channel,
    so the table lives here, is documented, and each entry is tested.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

# =========================================================================
# Local exceptions
# =========================================================================


class FieldTooLarge(ValueError):
    """A message field exceeds its encoded size bound."""

    def __init__(self, field: str, observed: int, maximum: int) -> None:
        self.field = field
        self.observed = observed
        self.maximum = maximum
        super().__init__(
            f"{field} is {observed} bytes, maximum is {maximum} bytes"
        )


class TruncatedBuffer(ValueError):
    """Fewer bytes remain than the next field (or its prefix) declares."""

    def __init__(self, field: str, needed: int, available: int) -> None:
        self.field = field
        self.needed = needed
        self.available = available
        super().__init__(
            f"buffer too short reading {field}: "
            f"need {needed} bytes, have {available}"
        )


class TrailingBytes(ValueError):
    """Bytes remain after the last field was consumed."""

    def __init__(self, count: int) -> None:
        self.count = count
        super().__init__(f"{count} trailing bytes after offChainData")


class InvalidLength(ValueError):
    """A fixed-width value (signature, key, digest) has the wrong size."""

    def __init__(self, field: str, observed: int, expected: int) -> None:
        self.field = field
        self.observed = observed
        self.expected = expected
        super().__init__(f"{field} must be {expected} bytes, got {observed}")


class NoSignaturesProvided(ValueError):
    """A signature-carrying submission was assembled with zero signers."""

    def __init__(self) -> None:
        super().__init__("at least one signature is required")


class TooManySignatures(ValueError):
    """The signer list exceeds the hard cap of the chosen encoding variant."""

    def __init__(self, count: int, maximum: int, variant: str) -> None:
        self.count = count
        self.maximum = maximum
        self.variant = variant
        super().__init__(
            f"too many signatures for {variant} encoding: "
            f"{count} provided, maximum {maximum}"
        )


class CompressionTableNotLoaded(ValueError):
    """Compact encoding was requested before a lookup table was loaded."""

    def __init__(self) -> None:
        super().__init__(
            "lookup table not loaded; call load_lookup_table() before "
            "requesting compact encoding"
        )


class EnvelopeTooLarge(ValueError):
    """The compiled envelope exceeds the ledger's packet limit."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"envelope is {size} bytes, limit is {limit} bytes")


class LookupTableNotFound(LookupError):
    """The published lookup-table address holds no table account."""

    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(f"lookup table not found: {address}")


# =========================================================================
# Outcome codes
# =========================================================================


class ErrorCode(StrEnum):
    """Machine-readable category of a failed submission attempt."""

    BACKEND_UNAVAILABLE = "BACKEND_UNAVAILABLE"
    SERVER_ERROR = "SERVER_ERROR"
    SIGNING_FAILED = "SIGNING_FAILED"
    REJECTED = "REJECTED"
    EXECUTION_FAILED = "EXECUTION_FAILED"
    BLOCKHASH_EXPIRED = "BLOCKHASH_EXPIRED"
    RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"
    UNKNOWN_OUTCOME = "UNKNOWN_OUTCOME"


# Codes that may succeed on a fresh attempt, unless the detail text
# matches the non-retryable vocabulary.
_RETRYABLE_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.BACKEND_UNAVAILABLE,
    ErrorCode.SERVER_ERROR,
    ErrorCode.EXECUTION_FAILED,
    ErrorCode.BLOCKHASH_EXPIRED,
})


# =========================================================================
# Non-retryable vocabulary
# =========================================================================

NON_RETRYABLE_ERRORS: tuple[str, ...] = (
    "already in use",        # replay-guard account already created
    "invalid",               # malformed request, bad signature, bad id
    "insufficient",          # threshold not met, funds too low
    "TxIdAlreadyExists",
    "TxIdNotFound",
    "SystemDisabled",
    "SignerNotRegistered",
)


def is_non_retryable(detail: str | None) -> bool:
    """Return True if the detail text matches the non-retryable vocabulary.

    Matching is a case-insensitive substring test against every entry
    of ``NON_RETRYABLE_ERRORS``.
    """
    if not detail:
        return False
    lowered = detail.lower()
    return any(term.lower() in lowered for term in NON_RETRYABLE_ERRORS)


@dataclass(frozen=True)
class AttemptFailure:
    """One classified failure.

    Attributes:
        code: Failure category.
        detail: Human-readable text, with the verifying program's own
            error text preserved where it was available.
        retryable: Whether another attempt could succeed. Fixed at
            construction by ``classify_failure``.
    """

    code: ErrorCode
    detail: str
    retryable: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "code": str(self.code),
            "detail": self.detail,
            "retryable": self.retryable,
        }


def classify_failure(code: ErrorCode, detail: str | None) -> AttemptFailure:
    """Build an AttemptFailure, deciding retryability once.

    Rules:
        - REJECTED, SIGNING_FAILED, RETRIES_EXHAUSTED and UNKNOWN_OUTCOME
          are never retryable.
        - Any other code is retryable unless ``detail`` matches the
          non-retryable vocabulary, in which case it is re-tagged
          REJECTED.
    """
    text = detail or str(code)
    if code not in _RETRYABLE_CODES:
        return AttemptFailure(code=code, detail=text, retryable=False)
    if is_non_retryable(text):
        return AttemptFailure(code=ErrorCode.REJECTED, detail=text, retryable=False)
    return AttemptFailure(code=code, detail=text, retryable=True)


def classify_connection_error(exc: BaseException) -> AttemptFailure:
    """Classify an exception raised by the transport layer."""
    detail = str(exc) or type(exc).__name__
    return classify_failure(ErrorCode.BACKEND_UNAVAILABLE, detail)


# =========================================================================
# Program error tables
# =========================================================================

# Anchor custom error numbers start at 6000.
GATEWAY_ERRORS: dict[int, tuple[str, str]] = {
    6000: ("SystemDisabled", "System is disabled"),
    6001: ("EmptyRecipient", "Empty recipient address"),
    6002: ("EmptyChainData", "Empty chain data"),
    6003: ("InvalidDestChain", "Invalid destination chain"),
    6004: ("UnauthorizedAuthority", "Unauthorized authority"),
    6005: ("InvalidTxId", "Invalid transaction ID"),
    6006: ("SenderTooLong", "Sender address too long"),
    6007: ("RecipientTooLong", "Recipient address too long"),
    6008: ("InvalidSenderLength", "Invalid sender length. Must be 20 bytes (EVM) or 32 bytes (Solana/Stellar)"),
    6009: ("InvalidRecipientLength", "Invalid recipient length. Must be 20 bytes (EVM) or 32 bytes (Solana/Stellar)"),
    6010: ("OnChainDataTooLarge", "On-chain data too large"),
    6011: ("OffChainDataTooLarge", "Off-chain data too large"),
    6012: ("InvalidSignature", "Invalid signature provided"),
    6013: ("InsufficientSignatures", "Insufficient signatures for validation"),
    6014: ("UnauthorizedSigner", "Unauthorized signer"),
    6015: ("InvalidMessageHash", "Invalid message hash"),
    6016: ("InsufficientViaSignatures", "Via signature threshold not met"),
    6017: ("InsufficientChainSignatures", "Chain signature threshold not met"),
    6018: ("InsufficientProjectSignatures", "Project signature threshold not met"),
    6019: ("DuplicateSigner", "Duplicate signer detected"),
    6020: ("TooManySignatures", "Too many signatures provided"),
    6021: ("TooFewSignatures", "Too few signatures provided"),
    6022: ("InvalidSignerRegistryType", "Invalid signer registry type"),
    6023: ("SignerRegistryDisabled", "Signer registry is disabled"),
    6024: ("InvalidThreshold", "Invalid threshold configuration"),
    6025: ("ThresholdTooHigh", "Threshold too high for signer count"),
    6026: ("Ed25519VerificationFailed", "Ed25519 signature verification failed"),
    6027: ("MessageHashMismatch", "Message hash mismatch"),
    6028: ("HashGenerationFailed", "Cross-chain hash generation failed"),
    6029: ("InvalidSignatureFormat", "Signature format invalid"),
    6030: ("Ed25519InstructionTooSmall", "Ed25519 instruction data too small"),
    6031: ("Ed25519InvalidHeader", "Ed25519 header format invalid"),
    6032: ("Ed25519MultipleSignaturesUnsupported", "Ed25519 instruction supports only single signature"),
    6033: ("Ed25519CrossInstructionUnsupported", "Ed25519 cross-instruction references not supported"),
    6034: ("Ed25519SignatureOffsetInvalid", "Ed25519 signature offset out of bounds"),
    6035: ("Ed25519PublicKeyOffsetInvalid", "Ed25519 public key offset out of bounds"),
    6036: ("Ed25519MessageOffsetInvalid", "Ed25519 message offset out of bounds"),
    6037: ("Ed25519MessageSizeMismatch", "Ed25519 message size mismatch"),
    6038: ("Ed25519InstructionNotFound", "No matching Ed25519 instruction found"),
    6039: ("InvalidChainId", "Invalid chain ID"),
    6040: ("UnsupportedChain", "Unsupported chain"),
    6041: ("UnauthorizedAccess", "Unauthorized access"),
    6042: ("GatewayDisabled", "Gateway is disabled"),
    6043: ("TxIdTooOld", "Transaction ID is too old - must be greater than highest seen"),
    6044: ("TxIdOverflow", "Transaction ID counter overflow - maximum transactions reached"),
    6045: ("SerializationFailed", "Failed to serialize CPI instruction data"),
    6046: ("TooManyAccounts", "Too many accounts provided - exceeds protocol limit"),
    6047: ("InvalidRecipientPda", "Recipient PDA verification failed - invalid derivation"),
    6048: ("NoExecutableProgram", "No executable program found in remaining accounts"),
    6049: ("InvalidClientConfigSeed", "ClientConfig PDA seed mismatch - expected standard derivation"),
    6050: ("FeeHandlerFailed", "Fee collection failed - transaction reverted"),
    6051: ("GasHandlerFailed", "Gas reimbursement failed (non-critical)"),
}

FEE_HANDLER_ERRORS: dict[int, tuple[str, str]] = {
    6000: ("FeeCollectionOffline", "Fee collection is offline - fees cannot be collected"),
    6001: ("UnauthorizedAuthority", "Unauthorized authority - caller does not have permission"),
    6002: ("FeeExceedsMaximum", "Fee amount exceeds maximum allowed - check max_fee configuration"),
    6003: ("InvalidFeeTokenMint", "Invalid fee token mint - does not match configured mint"),
    6004: ("InvalidTokenDecimals", "Invalid token decimals - must be between 0 and 18"),
    6005: ("FeeCalculationOverflow", "Arithmetic overflow in fee calculation"),
    6006: ("InvalidFeeTokenAccount", "Invalid fee token account - account does not match expected token"),
    6007: ("FeeTransferFailed", "Fee transfer failed - check token balances and approvals"),
}

GAS_HANDLER_ERRORS: dict[int, tuple[str, str]] = {
    6000: ("GasReimbursementDisabled", "Gas reimbursement is disabled - refunds cannot be processed"),
    6001: ("UnauthorizedAuthority", "Unauthorized authority - caller does not have permission"),
    6002: ("ReimbursementExceedsMaximum", "Reimbursement amount exceeds maximum allowed - check max_reimbursement configuration"),
    6003: ("ReimbursementBelowMinimum", "Reimbursement amount is below minimum threshold"),
    6004: ("GasCalculationOverflow", "Arithmetic overflow in gas calculation"),
    6005: ("InsufficientPoolFunds", "Gas pool has insufficient funds - please fund the pool"),
    6006: ("GasRefundTransferFailed", "Gas refund transfer failed - check pool balance and relayer account"),
    6007: ("InvalidGasPoolAccount", "Invalid gas pool account - does not match expected PDA"),
    6008: ("InvalidGatewayAccount", "Invalid gateway account - does not match configuration"),
    6009: ("PoolFundingTooSmall", "Pool funding amount is too small - must be at least minimum pool balance"),
}


def render_transaction_error(
    err: Any,
    error_table: dict[int, tuple[str, str]] | None = None,
) -> str:
    """Render a ledger-reported transaction error as readable text.

    Custom program errors (``{"InstructionError": [i, {"Custom": n}]}``)
    are expanded with the program's error name and message when ``n`` is
    in ``error_table``, so the vocabulary check can see names such as
    ``SystemDisabled``.

    Args:
        err: The ``err`` value from a signature status or simulation.
        error_table: Error table of the program that owns the failing
            instruction. Defaults to the gateway table.

    Returns:
        A single-line description. Never raises.
    """
    table = GATEWAY_ERRORS if error_table is None else error_table

    if isinstance(err, dict) and "InstructionError" in err:
        payload = err["InstructionError"]
        if isinstance(payload, list) and len(payload) == 2:
            index, inner = payload
            if isinstance(inner, dict) and "Custom" in inner:
                number = inner["Custom"]
                known = table.get(number) if isinstance(number, int) else None
                if known is not None:
                    name, message = known
                    return (
                        f"instruction {index} failed: Error Code: {name}. "
                        f"Error Number: {number}. Error Message: {message}."
                    )
                return f"instruction {index} failed: custom program error {number}"
            return f"instruction {index} failed: {inner}"

    if isinstance(err, str):
        return err
    return f"transaction failed: {err}"
