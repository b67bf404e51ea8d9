"""
Transaction orchestrator.

Composes the pure planning layer (instructions.py, signatures.py) with
the impure network boundary (client.py, signer.py).

Two steps:
    - ``plan_submission()`` — pure. Orders instructions, enforces the
      encoding variant's rules and the envelope budget. No I/O.
    - ``TransactionOrchestrator.execute()`` — impure. Per attempt:
      blockhash → compile → sign → send → confirm. Returns a
      SubmissionOutcome; never raises for network or ledger failures.

State per submission:
    Building → Submitted → Confirming → {Confirmed | Failed | Unknown}

Rules:
    - A plan is never mutated. Retries rebuild only the envelope (fresh
      blockhash, fresh signature) from the same instruction list.
    - A failure is classified once, when it is observed. Non-retryable
      failures end the submission at the attempt that produced them.
    - A confirmation timeout is UNKNOWN, never FAILED, and is never
      retried: the envelope may still land, so the caller must check
      replay-guard state before resubmitting.
    - Blockhash expiry is a retryable failure. The block height is read
      before the status poll, so a "not found" after the height passed
      the last valid height means the envelope can no longer land.
    - A failed status query is not "not found". It never counts as
      expiry; polling continues and the deadline yields UNKNOWN.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Awaitable, Callable, Sequence

from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.hash import Hash, ParseHashError
from solders.instruction import Instruction
from solders.message import Message, MessageV0, to_bytes_versioned
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from xchain_gateway.client import LedgerClient
from xchain_gateway.config import GatewayConfig
from xchain_gateway.constants import PACKET_DATA_SIZE
from xchain_gateway.errors import (
    FEE_HANDLER_ERRORS,
    GAS_HANDLER_ERRORS,
    GATEWAY_ERRORS,
    AttemptFailure,
    CompressionTableNotLoaded,
    EnvelopeTooLarge,
    ErrorCode,
    LookupTableNotFound,
    NoSignaturesProvided,
    TooManySignatures,
    classify_connection_error,
    classify_failure,
    render_transaction_error,
)
from xchain_gateway.signatures import EncodingVariant
from xchain_gateway.signer import TransactionSigner

logger = logging.getLogger(__name__)

# Address lookup table account header preceding the address list.
LOOKUP_TABLE_META_SIZE = 56

_COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}


class SubmissionStatus(StrEnum):
    CONFIRMED = "confirmed"
    FAILED = "failed"
    UNKNOWN = "unknown"


# =========================================================================
# SubmissionPlan (pure result of plan_submission())
# =========================================================================


@dataclass(frozen=True)
class SubmissionPlan:
    """Everything needed to build an envelope, minus the blockhash.

    Attributes:
        name: Operation name, for logs and outcomes.
        instructions: Verification instructions first, main operation last.
        variant: Standard (legacy message) or compact (v0 with table).
        payer: Fee payer and only signer of the envelope.
        lookup_table: Compression table; set only for the compact variant.
        verification_count: Number of leading verification instructions.
    """

    name: str
    instructions: tuple[Instruction, ...]
    variant: EncodingVariant
    payer: Pubkey
    lookup_table: AddressLookupTableAccount | None = None
    verification_count: int = 0

    @property
    def operation(self) -> Instruction:
        return self.instructions[-1]


def compile_message(plan: SubmissionPlan, blockhash: Hash) -> Message | MessageV0:
    """Compile the plan's instructions against ``blockhash``."""
    if plan.variant is EncodingVariant.COMPACT:
        tables = [plan.lookup_table] if plan.lookup_table is not None else []
        return MessageV0.try_compile(plan.payer, list(plan.instructions), tables, blockhash)
    return Message.new_with_blockhash(list(plan.instructions), plan.payer, blockhash)


def envelope_size(message: Message | MessageV0) -> int:
    """Serialized size of a signed envelope carrying ``message``."""
    placeholders = [Signature.default()] * message.header.num_required_signatures
    return len(bytes(VersionedTransaction.populate(message, placeholders)))


def plan_submission(
    name: str,
    operation: Instruction,
    payer: Pubkey,
    *,
    verification: Sequence[Instruction] | None = None,
    variant: EncodingVariant = EncodingVariant.STANDARD,
    lookup_table: AddressLookupTableAccount | None = None,
) -> SubmissionPlan:
    """Build a SubmissionPlan and check it fits in one envelope.

    Args:
        name: Operation name.
        operation: The main instruction.
        payer: Fee payer.
        verification: Verification instructions for a signature-carrying
            operation, in signer order. None for operations that carry no
            signatures.
        variant: Encoding variant.
        lookup_table: Loaded compression table (required for compact).

    Returns:
        A frozen SubmissionPlan.

    Raises:
        CompressionTableNotLoaded: Compact variant without a table.
        NoSignaturesProvided: ``verification`` is an empty sequence.
        TooManySignatures: ``verification`` exceeds the variant's cap.
        EnvelopeTooLarge: The compiled envelope exceeds the packet limit.
    """
    variant = EncodingVariant(variant)
    if variant is EncodingVariant.COMPACT and lookup_table is None:
        raise CompressionTableNotLoaded()

    units = list(verification) if verification is not None else []
    if verification is not None and not units:
        raise NoSignaturesProvided()
    cap = variant.max_verification_units
    if cap is not None and len(units) > cap:
        raise TooManySignatures(len(units), cap, str(variant))

    plan = SubmissionPlan(
        name=name,
        instructions=(*units, operation),
        variant=variant,
        payer=payer,
        lookup_table=lookup_table if variant is EncodingVariant.COMPACT else None,
        verification_count=len(units),
    )

    size = envelope_size(compile_message(plan, Hash.default()))
    if size > PACKET_DATA_SIZE:
        raise EnvelopeTooLarge(size, PACKET_DATA_SIZE)
    return plan


# =========================================================================
# SubmissionOutcome
# =========================================================================


@dataclass(frozen=True)
class SubmissionOutcome:
    """Final result of executing a plan.

    Attributes:
        name: Operation name.
        status: confirmed, failed or unknown.
        attempts: Attempts made (1-indexed count).
        signature: Signature of the last envelope sent, if any.
        slot: Slot the envelope landed in (confirmed or execution error).
        error: The classified failure. None when confirmed.
        last_error: For RETRIES_EXHAUSTED, the last underlying failure.
    """

    name: str
    status: SubmissionStatus
    attempts: int
    signature: str | None = None
    slot: int | None = None
    error: AttemptFailure | None = None
    last_error: AttemptFailure | None = None

    @property
    def ok(self) -> bool:
        return self.status is SubmissionStatus.CONFIRMED

    def to_dict(self) -> dict[str, object]:
        result: dict[str, object] = {
            "name": self.name,
            "status": str(self.status),
            "attempts": self.attempts,
        }
        if self.signature is not None:
            result["signature"] = self.signature
        if self.slot is not None:
            result["slot"] = self.slot
        if self.error is not None:
            result["error"] = self.error.to_dict()
        if self.last_error is not None:
            result["last_error"] = self.last_error.to_dict()
        return result


@dataclass(frozen=True)
class _Attempt:
    signature: str | None = None
    slot: int | None = None
    failure: AttemptFailure | None = None
    unknown: bool = False


def _error_code(value: str | None) -> ErrorCode:
    try:
        return ErrorCode(value)
    except ValueError:
        return ErrorCode.SERVER_ERROR


# =========================================================================
# TransactionOrchestrator — impure
# =========================================================================


class TransactionOrchestrator:
    """Submits plans with retry, backoff and confirmation.

    The only shared state is the lookup table, written once by
    ``load_lookup_table()`` and read by every later plan.

    Args:
        client: Ledger network boundary.
        signer: Fee payer; signs every envelope.
        config: Program ids and submission tuning.
        sleep: Awaitable sleep, injectable for tests.
        clock: Monotonic clock in seconds, injectable for tests.
    """

    def __init__(
        self,
        client: LedgerClient,
        signer: TransactionSigner,
        config: GatewayConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._signer = signer
        self._config = config or GatewayConfig()
        self._sleep = sleep
        self._clock = clock
        self._lookup_table: AddressLookupTableAccount | None = None
        self._error_tables: dict[Pubkey, dict[int, tuple[str, str]]] = {
            self._config.gateway_program_id: GATEWAY_ERRORS,
            self._config.fee_handler_program_id: FEE_HANDLER_ERRORS,
            self._config.gas_handler_program_id: GAS_HANDLER_ERRORS,
        }

    @property
    def config(self) -> GatewayConfig:
        return self._config

    @property
    def payer(self) -> Pubkey:
        return self._signer.pubkey()

    @property
    def lookup_table(self) -> AddressLookupTableAccount | None:
        return self._lookup_table

    # -----------------------------------------------------------------
    # Account reads
    # -----------------------------------------------------------------

    async def load_lookup_table(self, address: Pubkey) -> AddressLookupTableAccount:
        """Fetch and keep the compression table published at ``address``.

        Logs a warning, without failing, when the gas handler program is
        not in the table (a deployment predating gas reimbursement).

        Raises:
            LookupTableNotFound: No account at ``address``.
            ConnectionError: The account read failed.
            ValueError: The account data is not a lookup table.
        """
        result = await self._client.get_account_info(str(address))
        if result.error_code is not None:
            raise ConnectionError(
                f"lookup table read failed: {result.detail or result.error_code}"
            )
        if not result.found:
            raise LookupTableNotFound(str(address))

        body = result.data[LOOKUP_TABLE_META_SIZE:]
        if len(result.data) < LOOKUP_TABLE_META_SIZE or len(body) % 32:
            raise ValueError(
                f"account {address} is not a lookup table ({len(result.data)} bytes)"
            )
        addresses = [Pubkey.from_bytes(body[i:i + 32]) for i in range(0, len(body), 32)]
        table = AddressLookupTableAccount(key=address, addresses=addresses)
        self._lookup_table = table
        logger.info("loaded lookup table %s with %d addresses", address, len(addresses))

        gas_handler = self._config.gas_handler_program_id
        if gas_handler not in addresses:
            logger.warning(
                "gas handler %s not found in lookup table %s; "
                "gas handler operations may fail on this deployment",
                gas_handler,
                address,
            )
        return table

    async def gas_handler_deployed(self) -> bool:
        """True if the gas handler program account exists and is executable."""
        program_id = self._config.gas_handler_program_id
        try:
            result = await self._client.get_account_info(str(program_id))
        except Exception as exc:
            logger.warning("gas handler lookup failed, treating as not deployed: %s", exc)
            return False
        if result.error_code is not None:
            logger.warning(
                "gas handler lookup failed, treating as not deployed: %s", result.detail
            )
            return False
        return result.found and result.executable

    # -----------------------------------------------------------------
    # Planning and execution
    # -----------------------------------------------------------------

    def plan(
        self,
        name: str,
        operation: Instruction,
        *,
        verification: Sequence[Instruction] | None = None,
        variant: EncodingVariant = EncodingVariant.STANDARD,
    ) -> SubmissionPlan:
        """``plan_submission()`` with this orchestrator's payer and table."""
        return plan_submission(
            name,
            operation,
            self.payer,
            verification=verification,
            variant=variant,
            lookup_table=self._lookup_table,
        )

    async def submit(
        self,
        name: str,
        operation: Instruction,
        *,
        verification: Sequence[Instruction] | None = None,
        variant: EncodingVariant = EncodingVariant.STANDARD,
    ) -> SubmissionOutcome:
        """Plan and execute. Planning errors are raised before any I/O."""
        plan = self.plan(name, operation, verification=verification, variant=variant)
        return await self.execute(plan)

    async def execute(self, plan: SubmissionPlan) -> SubmissionOutcome:
        """Run attempts until confirmed, fatal, unknown or out of attempts."""
        policy = self._config.retry
        signature: str | None = None
        attempt = 0

        while True:
            attempt += 1
            result = await self._attempt(plan)
            signature = result.signature or signature

            if result.unknown:
                logger.warning(
                    "%s: confirmation timed out for %s; outcome unknown",
                    plan.name,
                    result.signature,
                )
                return SubmissionOutcome(
                    name=plan.name,
                    status=SubmissionStatus.UNKNOWN,
                    attempts=attempt,
                    signature=result.signature,
                    error=AttemptFailure(
                        code=ErrorCode.UNKNOWN_OUTCOME,
                        detail=(
                            f"no confirmation for {result.signature} within "
                            f"{self._config.confirm_timeout}s; check replay-guard "
                            "state before resubmitting"
                        ),
                        retryable=False,
                    ),
                )

            if result.failure is None:
                return SubmissionOutcome(
                    name=plan.name,
                    status=SubmissionStatus.CONFIRMED,
                    attempts=attempt,
                    signature=result.signature,
                    slot=result.slot,
                )

            if not result.failure.retryable:
                return SubmissionOutcome(
                    name=plan.name,
                    status=SubmissionStatus.FAILED,
                    attempts=attempt,
                    signature=result.signature,
                    slot=result.slot,
                    error=result.failure,
                )

            last = result.failure
            if attempt >= policy.max_attempts:
                return SubmissionOutcome(
                    name=plan.name,
                    status=SubmissionStatus.FAILED,
                    attempts=attempt,
                    signature=signature,
                    error=AttemptFailure(
                        code=ErrorCode.RETRIES_EXHAUSTED,
                        detail=f"{plan.name} failed after {attempt} attempts: {last.detail}",
                        retryable=False,
                    ),
                    last_error=last,
                )

            delay = policy.delay_for(attempt)
            logger.warning(
                "%s attempt %d/%d failed (%s), retrying in %.1fs: %s",
                plan.name,
                attempt,
                policy.max_attempts,
                last.code,
                delay,
                last.detail,
            )
            await self._sleep(delay)

    # -----------------------------------------------------------------
    # One attempt
    # -----------------------------------------------------------------

    async def _attempt(self, plan: SubmissionPlan) -> _Attempt:
        # 1. Blockhash
        try:
            latest = await self._client.get_latest_blockhash()
        except Exception as exc:
            return _Attempt(failure=classify_connection_error(exc))
        if latest.error_code is not None or latest.blockhash is None:
            return _Attempt(
                failure=classify_failure(_error_code(latest.error_code), latest.detail)
            )
        try:
            blockhash = Hash.from_string(latest.blockhash)
        except ParseHashError as exc:
            return _Attempt(
                failure=classify_failure(
                    ErrorCode.SERVER_ERROR, f"malformed blockhash {latest.blockhash!r}: {exc}"
                )
            )

        # 2. Compile and sign
        message = compile_message(plan, blockhash)
        try:
            tx_signature = self._signer.sign_message(to_bytes_versioned(message))
        except Exception as exc:
            return _Attempt(
                failure=classify_failure(ErrorCode.SIGNING_FAILED, f"signing failed: {exc}")
            )
        tx = VersionedTransaction.populate(message, [tx_signature])
        encoded = base64.b64encode(bytes(tx)).decode("ascii")

        # 3. Send
        try:
            sent = await self._client.send_transaction(encoded)
        except Exception as exc:
            return _Attempt(failure=classify_connection_error(exc))
        if not sent.accepted:
            detail = sent.detail
            if sent.err is not None:
                rendered = render_transaction_error(sent.err, self._error_table_for(plan, sent.err))
                detail = f"{rendered}; {detail}" if detail else rendered
            return _Attempt(failure=classify_failure(_error_code(sent.error_code), detail))

        signature = sent.signature or str(tx_signature)
        logger.debug("%s submitted as %s", plan.name, signature)

        # 4. Confirm
        return await self._confirm(plan, signature, latest.last_valid_block_height)

    async def _confirm(
        self,
        plan: SubmissionPlan,
        signature: str,
        last_valid_block_height: int | None,
    ) -> _Attempt:
        deadline = self._clock() + self._config.confirm_timeout
        target = _COMMITMENT_RANK.get(self._config.commitment, 1)

        while True:
            expired = False
            if last_valid_block_height is not None:
                expired = await self._height_passed(last_valid_block_height)

            try:
                status = await self._client.get_signature_status(signature)
            except Exception as exc:
                logger.debug("%s: status poll failed for %s: %s", plan.name, signature, exc)
                status = None

            if status is not None and status.found:
                if status.err is not None:
                    detail = render_transaction_error(
                        status.err, self._error_table_for(plan, status.err)
                    )
                    return _Attempt(
                        signature=signature,
                        slot=status.slot,
                        failure=classify_failure(ErrorCode.EXECUTION_FAILED, detail),
                    )
                if _COMMITMENT_RANK.get(status.confirmation_status or "", -1) >= target:
                    return _Attempt(signature=signature, slot=status.slot)
            elif expired and status is not None and status.error_code is None:
                return _Attempt(
                    signature=signature,
                    failure=classify_failure(
                        ErrorCode.BLOCKHASH_EXPIRED,
                        f"blockhash expired before {signature} landed",
                    ),
                )

            if self._clock() >= deadline:
                return _Attempt(signature=signature, unknown=True)
            await self._sleep(self._config.poll_interval)

    async def _height_passed(self, last_valid_block_height: int) -> bool:
        try:
            result = await self._client.get_block_height()
        except Exception as exc:
            logger.debug("block height read failed: %s", exc)
            return False
        return result.height is not None and result.height > last_valid_block_height

    def _error_table_for(
        self, plan: SubmissionPlan, err: Any
    ) -> dict[int, tuple[str, str]]:
        """Error table of the program owning the failing instruction."""
        if isinstance(err, dict):
            payload = err.get("InstructionError")
            if isinstance(payload, list) and payload and isinstance(payload[0], int):
                index = payload[0]
                if 0 <= index < len(plan.instructions):
                    return self._error_tables.get(plan.instructions[index].program_id, {})
        return self._error_tables[self._config.gateway_program_id]
