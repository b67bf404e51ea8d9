"""
Tests for plan_submission() and TransactionOrchestrator.

All tests use a fake ledger client, a local keypair and a fake clock;
no network calls and no real sleeping.

Test plan:
- Planning: verification instructions precede the operation, compact
  without a loaded table raises CompressionTableNotLoaded, empty
  verification raises NoSignaturesProvided, compact cap, oversized
  envelope raises EnvelopeTooLarge
- Execute: confirmed on first attempt, commitment below target keeps
  polling, non-retryable rejection stops after one attempt, retryable
  failures back off 1s then 2s and end RETRIES_EXHAUSTED with the last
  failure attached
- Confirmation timeout → UNKNOWN, single attempt, replay-guard hint
- Blockhash expiry → retried with a fresh blockhash; a failed status
  query past the last valid height is not expiry and ends UNKNOWN
- Malformed blockhash from the node → SERVER_ERROR, nothing sent
- Execution errors rendered with the failing program's table
- Signing failure → SIGNING_FAILED, never retried
- Lookup table: load, missing gas handler warning, not found, bad data
- gas_handler_deployed(): executable account, missing, read failure
"""

import logging
from typing import Any

import pytest
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from xchain_gateway.accounts import SetSystemEnabledAccounts
from xchain_gateway.client import (
    AccountInfoResult,
    BlockHeightResult,
    BlockhashResult,
    SendResult,
    SignatureStatusResult,
)
from xchain_gateway.config import GatewayConfig, RetryPolicy
from xchain_gateway.constants import DEFAULT_FEE_HANDLER_PROGRAM_ID, DEFAULT_GAS_HANDLER_PROGRAM_ID
from xchain_gateway.errors import (
    CompressionTableNotLoaded,
    EnvelopeTooLarge,
    ErrorCode,
    LookupTableNotFound,
    NoSignaturesProvided,
    TooManySignatures,
)
from xchain_gateway.instructions import set_system_enabled
from xchain_gateway.orchestrator import (
    LOOKUP_TABLE_META_SIZE,
    SubmissionStatus,
    TransactionOrchestrator,
    plan_submission,
)
from xchain_gateway.signatures import EncodingVariant, VerificationUnit, build_ed25519_instruction

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

BLOCKHASH = str(Hash(b"\x07" * 32))
SIGNATURE = "4" * 88
TABLE_ADDRESS = Pubkey.from_string("AVBwhh7cXhSgDXySooSeR5GiZ1EGfVW7sDBE5KkHrfym")

CONFIG = GatewayConfig(confirm_timeout=2.0, poll_interval=0.5)
SINGLE_ATTEMPT = GatewayConfig(
    confirm_timeout=2.0, poll_interval=0.5, retry=RetryPolicy(max_attempts=1)
)


def _next(queue: list[Any]) -> Any:
    item = queue.pop(0) if len(queue) > 1 else queue[0]
    if isinstance(item, Exception):
        raise item
    return item


class FakeLedgerClient:
    """Minimal LedgerClient implementation for testing.

    Each response list is consumed front to back; the last entry repeats.
    Exceptions in a list are raised instead of returned.
    """

    def __init__(
        self,
        *,
        blockhashes: list[Any] | None = None,
        sends: list[Any] | None = None,
        statuses: list[Any] | None = None,
        heights: list[Any] | None = None,
        accounts: dict[str, Any] | None = None,
    ) -> None:
        self._blockhashes = blockhashes or [
            BlockhashResult(blockhash=BLOCKHASH, last_valid_block_height=100)
        ]
        self._sends = sends or [SendResult(accepted=True, signature=SIGNATURE)]
        self._statuses = statuses or [
            SignatureStatusResult(found=True, confirmation_status="confirmed", slot=42)
        ]
        self._heights = heights or [BlockHeightResult(height=90)]
        self._accounts = accounts or {}
        self.sent: list[str] = []
        self.status_calls = 0

    async def get_latest_blockhash(self) -> BlockhashResult:
        return _next(self._blockhashes)

    async def send_transaction(self, signed_tx_base64: str) -> SendResult:
        self.sent.append(signed_tx_base64)
        return _next(self._sends)

    async def get_signature_status(self, signature: str) -> SignatureStatusResult:
        self.status_calls += 1
        return _next(self._statuses)

    async def get_block_height(self) -> BlockHeightResult:
        return _next(self._heights)

    async def get_account_info(self, address: str) -> AccountInfoResult:
        result = self._accounts.get(address, AccountInfoResult(found=False))
        if isinstance(result, Exception):
            raise result
        return result


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FailingSigner:
    def __init__(self) -> None:
        self._keypair = Keypair()

    def pubkey(self) -> Pubkey:
        return self._keypair.pubkey()

    def sign_message(self, message: bytes) -> Any:
        raise RuntimeError("hardware wallet disconnected")


def _orchestrator(
    client: FakeLedgerClient,
    *,
    signer: Any = None,
    config: GatewayConfig = CONFIG,
) -> tuple[TransactionOrchestrator, FakeClock]:
    clock = FakeClock()
    orchestrator = TransactionOrchestrator(
        client,
        signer or Keypair(),
        config,
        sleep=clock.sleep,
        clock=clock,
    )
    return orchestrator, clock


def _operation(payer: Pubkey) -> Instruction:
    return set_system_enabled(
        SetSystemEnabledAccounts(gateway=Pubkey.new_unique(), authority=payer), True
    )


def _verification(count: int) -> list[Instruction]:
    digest = b"\x5a" * 32
    return [
        build_ed25519_instruction(
            VerificationUnit(signature=bytes([i]) * 64, signer_key=bytes([i]) * 32), digest
        )
        for i in range(count)
    ]


def _table_data(addresses: list[Pubkey]) -> bytes:
    return b"\x00" * LOOKUP_TABLE_META_SIZE + b"".join(bytes(a) for a in addresses)


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


class TestPlanSubmission:
    def test_verification_precedes_operation(self) -> None:
        payer = Pubkey.new_unique()
        operation = _operation(payer)
        verification = _verification(2)
        plan = plan_submission("op", operation, payer, verification=verification)
        assert plan.instructions == (*verification, operation)
        assert plan.operation == operation
        assert plan.verification_count == 2
        assert plan.lookup_table is None

    def test_operation_without_signatures(self) -> None:
        payer = Pubkey.new_unique()
        plan = plan_submission("op", _operation(payer), payer)
        assert plan.verification_count == 0
        assert len(plan.instructions) == 1

    def test_compact_requires_table(self) -> None:
        payer = Pubkey.new_unique()
        with pytest.raises(CompressionTableNotLoaded):
            plan_submission(
                "op", _operation(payer), payer,
                verification=_verification(1), variant=EncodingVariant.COMPACT,
            )

    def test_empty_verification_rejected(self) -> None:
        payer = Pubkey.new_unique()
        with pytest.raises(NoSignaturesProvided):
            plan_submission("op", _operation(payer), payer, verification=[])

    def test_envelope_too_large(self) -> None:
        payer = Pubkey.new_unique()
        with pytest.raises(EnvelopeTooLarge) as exc_info:
            plan_submission("op", _operation(payer), payer, verification=_verification(10))
        assert exc_info.value.size > exc_info.value.limit == 1232

    @pytest.mark.asyncio
    async def test_compact_cap_after_table_loaded(self) -> None:
        client = FakeLedgerClient(
            accounts={
                str(TABLE_ADDRESS): AccountInfoResult(
                    found=True, data=_table_data([DEFAULT_GAS_HANDLER_PROGRAM_ID])
                )
            }
        )
        orchestrator, _ = _orchestrator(client)
        await orchestrator.load_lookup_table(TABLE_ADDRESS)
        payer = orchestrator.payer

        plan = orchestrator.plan(
            "op", _operation(payer), verification=_verification(3),
            variant=EncodingVariant.COMPACT,
        )
        assert plan.variant is EncodingVariant.COMPACT
        assert plan.lookup_table is not None

        with pytest.raises(TooManySignatures):
            orchestrator.plan(
                "op", _operation(payer), verification=_verification(4),
                variant=EncodingVariant.COMPACT,
            )


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class TestExecuteConfirmed:
    @pytest.mark.asyncio
    async def test_confirmed_first_attempt(self) -> None:
        client = FakeLedgerClient()
        orchestrator, clock = _orchestrator(client)
        outcome = await orchestrator.submit("enable", _operation(orchestrator.payer))
        assert outcome.ok
        assert outcome.status is SubmissionStatus.CONFIRMED
        assert outcome.attempts == 1
        assert outcome.signature == SIGNATURE
        assert outcome.slot == 42
        assert outcome.error is None
        assert len(client.sent) == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_processed_keeps_polling_until_confirmed(self) -> None:
        client = FakeLedgerClient(
            statuses=[
                SignatureStatusResult(found=False),
                SignatureStatusResult(found=True, confirmation_status="processed", slot=42),
                SignatureStatusResult(found=True, confirmation_status="confirmed", slot=42),
            ]
        )
        orchestrator, clock = _orchestrator(client)
        outcome = await orchestrator.submit("enable", _operation(orchestrator.payer))
        assert outcome.ok
        assert client.status_calls == 3
        assert clock.sleeps == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_status_poll_exception_keeps_polling(self) -> None:
        client = FakeLedgerClient(
            statuses=[
                ConnectionError("reset"),
                SignatureStatusResult(found=True, confirmation_status="finalized", slot=7),
            ]
        )
        orchestrator, _ = _orchestrator(client)
        outcome = await orchestrator.submit("enable", _operation(orchestrator.payer))
        assert outcome.ok
        assert outcome.slot == 7

    @pytest.mark.asyncio
    async def test_outcome_to_dict(self) -> None:
        orchestrator, _ = _orchestrator(FakeLedgerClient())
        outcome = await orchestrator.submit("enable", _operation(orchestrator.payer))
        assert outcome.to_dict() == {
            "name": "enable",
            "status": "confirmed",
            "attempts": 1,
            "signature": SIGNATURE,
            "slot": 42,
        }


class TestExecuteFailures:
    @pytest.mark.asyncio
    async def test_non_retryable_stops_after_one_attempt(self) -> None:
        client = FakeLedgerClient(
            sends=[
                SendResult(
                    accepted=False,
                    error_code="EXECUTION_FAILED",
                    detail="Program log: Error Code: TxIdNotFound",
                )
            ]
        )
        orchestrator, clock = _orchestrator(client)
        outcome = await orchestrator.submit("process", _operation(orchestrator.payer))
        assert outcome.status is SubmissionStatus.FAILED
        assert outcome.attempts == 1
        assert outcome.error is not None
        assert outcome.error.code == ErrorCode.REJECTED
        assert "TxIdNotFound" in outcome.error.detail
        assert len(client.sent) == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_retries_with_backoff_then_exhausted(self) -> None:
        client = FakeLedgerClient(sends=[TimeoutError("read timed out")])
        orchestrator, clock = _orchestrator(client)
        outcome = await orchestrator.submit("enable", _operation(orchestrator.payer))
        assert outcome.status is SubmissionStatus.FAILED
        assert outcome.attempts == 3
        assert len(client.sent) == 3
        assert clock.sleeps == [1.0, 2.0]
        assert outcome.error is not None
        assert outcome.error.code == ErrorCode.RETRIES_EXHAUSTED
        assert "failed after 3 attempts" in outcome.error.detail
        assert outcome.last_error is not None
        assert outcome.last_error.code == ErrorCode.BACKEND_UNAVAILABLE
        assert outcome.last_error.detail == "read timed out"

    @pytest.mark.asyncio
    async def test_retry_then_success(self) -> None:
        client = FakeLedgerClient(
            blockhashes=[
                BlockhashResult(error_code="SERVER_ERROR", detail="node is behind"),
                BlockhashResult(blockhash=BLOCKHASH, last_valid_block_height=100),
            ]
        )
        orchestrator, clock = _orchestrator(client)
        outcome = await orchestrator.submit("enable", _operation(orchestrator.payer))
        assert outcome.ok
        assert outcome.attempts == 2
        assert clock.sleeps == [1.0]

    @pytest.mark.asyncio
    async def test_malformed_blockhash_is_server_error(self) -> None:
        client = FakeLedgerClient(blockhashes=[BlockhashResult(blockhash="not-a-hash")])
        orchestrator, _ = _orchestrator(client, config=SINGLE_ATTEMPT)
        outcome = await orchestrator.submit("enable", _operation(orchestrator.payer))
        assert outcome.error is not None
        assert outcome.error.code == ErrorCode.RETRIES_EXHAUSTED
        assert outcome.last_error is not None
        assert outcome.last_error.code == ErrorCode.SERVER_ERROR
        assert "malformed blockhash" in outcome.last_error.detail
        assert client.sent == []

    @pytest.mark.asyncio
    async def test_signing_failure_is_fatal(self) -> None:
        client = FakeLedgerClient()
        orchestrator, _ = _orchestrator(client, signer=FailingSigner())
        outcome = await orchestrator.submit("enable", _operation(orchestrator.payer))
        assert outcome.status is SubmissionStatus.FAILED
        assert outcome.attempts == 1
        assert outcome.error is not None
        assert outcome.error.code == ErrorCode.SIGNING_FAILED
        assert "hardware wallet disconnected" in outcome.error.detail
        assert client.sent == []


class TestUnknownOutcome:
    @pytest.mark.asyncio
    async def test_timeout_is_unknown_and_not_retried(self) -> None:
        client = FakeLedgerClient(statuses=[SignatureStatusResult(found=False)])
        orchestrator, clock = _orchestrator(client)
        outcome = await orchestrator.submit("process", _operation(orchestrator.payer))
        assert outcome.status is SubmissionStatus.UNKNOWN
        assert not outcome.ok
        assert outcome.attempts == 1
        assert outcome.signature == SIGNATURE
        assert outcome.error is not None
        assert outcome.error.code == ErrorCode.UNKNOWN_OUTCOME
        assert outcome.error.retryable is False
        assert "replay-guard" in outcome.error.detail
        assert len(client.sent) == 1
        assert clock.sleeps == [0.5, 0.5, 0.5, 0.5]


class TestBlockhashExpiry:
    @pytest.mark.asyncio
    async def test_expiry_retries_with_fresh_blockhash(self) -> None:
        fresh = str(Hash(b"\x08" * 32))
        client = FakeLedgerClient(
            blockhashes=[
                BlockhashResult(blockhash=BLOCKHASH, last_valid_block_height=100),
                BlockhashResult(blockhash=fresh, last_valid_block_height=300),
            ],
            heights=[BlockHeightResult(height=150)],
            statuses=[
                SignatureStatusResult(found=False),
                SignatureStatusResult(found=True, confirmation_status="confirmed", slot=9),
            ],
        )
        orchestrator, clock = _orchestrator(client)
        outcome = await orchestrator.submit("enable", _operation(orchestrator.payer))
        assert outcome.ok
        assert outcome.attempts == 2
        assert len(client.sent) == 2
        assert client.sent[0] != client.sent[1]
        assert clock.sleeps == [1.0]

    @pytest.mark.asyncio
    async def test_status_query_error_after_expiry_is_unknown(self) -> None:
        client = FakeLedgerClient(
            heights=[BlockHeightResult(height=200)],
            statuses=[
                SignatureStatusResult(
                    found=False, error_code="SERVER_ERROR", detail="node overloaded"
                )
            ],
        )
        orchestrator, clock = _orchestrator(client)
        outcome = await orchestrator.submit("fund", _operation(orchestrator.payer))
        assert outcome.status is SubmissionStatus.UNKNOWN
        assert outcome.attempts == 1
        assert outcome.error is not None
        assert outcome.error.code == ErrorCode.UNKNOWN_OUTCOME
        assert outcome.last_error is None
        assert len(client.sent) == 1
        assert clock.sleeps == [0.5, 0.5, 0.5, 0.5]

    @pytest.mark.asyncio
    async def test_not_found_after_expiry_is_retryable(self) -> None:
        client = FakeLedgerClient(
            heights=[BlockHeightResult(height=200)],
            statuses=[SignatureStatusResult(found=False)],
        )
        orchestrator, clock = _orchestrator(client, config=SINGLE_ATTEMPT)
        outcome = await orchestrator.submit("fund", _operation(orchestrator.payer))
        assert outcome.status is SubmissionStatus.FAILED
        assert outcome.last_error is not None
        assert outcome.last_error.code == ErrorCode.BLOCKHASH_EXPIRED
        assert outcome.last_error.retryable is True
        assert clock.sleeps == []


class TestErrorRendering:
    @pytest.mark.asyncio
    async def test_gateway_custom_error_is_rejected(self) -> None:
        client = FakeLedgerClient(
            sends=[
                SendResult(
                    accepted=False,
                    error_code="EXECUTION_FAILED",
                    detail="Transaction simulation failed",
                    err={"InstructionError": [0, {"Custom": 6000}]},
                )
            ]
        )
        orchestrator, _ = _orchestrator(client)
        outcome = await orchestrator.submit("enable", _operation(orchestrator.payer))
        assert outcome.error is not None
        assert outcome.error.code == ErrorCode.REJECTED
        assert outcome.error.detail.startswith("instruction 0 failed: Error Code: SystemDisabled.")
        assert outcome.attempts == 1

    @pytest.mark.asyncio
    async def test_handler_table_used_for_handler_instruction(self) -> None:
        client = FakeLedgerClient(
            statuses=[
                SignatureStatusResult(
                    found=True,
                    confirmation_status="confirmed",
                    slot=5,
                    err={"InstructionError": [0, {"Custom": 6000}]},
                )
            ]
        )
        orchestrator, _ = _orchestrator(client)
        operation = Instruction(
            DEFAULT_FEE_HANDLER_PROGRAM_ID,
            b"\x00" * 9,
            [AccountMeta(orchestrator.payer, is_signer=True, is_writable=True)],
        )
        outcome = await orchestrator.submit("set_offline", operation)
        assert outcome.error is not None
        assert outcome.error.code == ErrorCode.RETRIES_EXHAUSTED
        assert outcome.last_error is not None
        assert outcome.last_error.code == ErrorCode.EXECUTION_FAILED
        assert "FeeCollectionOffline" in outcome.last_error.detail
        assert outcome.slot is None

    @pytest.mark.asyncio
    async def test_unknown_program_renders_raw_number(self) -> None:
        client = FakeLedgerClient(
            sends=[
                SendResult(
                    accepted=False,
                    error_code="EXECUTION_FAILED",
                    err={"InstructionError": [0, {"Custom": 6000}]},
                )
            ]
        )
        orchestrator, _ = _orchestrator(
            client, config=SINGLE_ATTEMPT
        )
        operation = Instruction(
            Pubkey.new_unique(),
            b"",
            [AccountMeta(orchestrator.payer, is_signer=True, is_writable=True)],
        )
        outcome = await orchestrator.submit("other", operation)
        assert outcome.last_error is not None
        assert outcome.last_error.detail == "instruction 0 failed: custom program error 6000"


# ---------------------------------------------------------------------------
# Lookup table and gas handler presence
# ---------------------------------------------------------------------------


class TestLookupTable:
    @pytest.mark.asyncio
    async def test_load(self, caplog: pytest.LogCaptureFixture) -> None:
        addresses = [Pubkey.new_unique(), DEFAULT_GAS_HANDLER_PROGRAM_ID]
        client = FakeLedgerClient(
            accounts={str(TABLE_ADDRESS): AccountInfoResult(found=True, data=_table_data(addresses))}
        )
        orchestrator, _ = _orchestrator(client)
        with caplog.at_level(logging.WARNING, logger="xchain_gateway.orchestrator"):
            table = await orchestrator.load_lookup_table(TABLE_ADDRESS)
        assert table.key == TABLE_ADDRESS
        assert list(table.addresses) == addresses
        assert orchestrator.lookup_table == table
        assert "gas handler" not in caplog.text

    @pytest.mark.asyncio
    async def test_missing_gas_handler_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        client = FakeLedgerClient(
            accounts={
                str(TABLE_ADDRESS): AccountInfoResult(
                    found=True, data=_table_data([Pubkey.new_unique()])
                )
            }
        )
        orchestrator, _ = _orchestrator(client)
        with caplog.at_level(logging.WARNING, logger="xchain_gateway.orchestrator"):
            await orchestrator.load_lookup_table(TABLE_ADDRESS)
        assert "gas handler" in caplog.text
        assert orchestrator.lookup_table is not None

    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        orchestrator, _ = _orchestrator(FakeLedgerClient())
        with pytest.raises(LookupTableNotFound):
            await orchestrator.load_lookup_table(TABLE_ADDRESS)
        assert orchestrator.lookup_table is None

    @pytest.mark.asyncio
    async def test_read_error(self) -> None:
        client = FakeLedgerClient(
            accounts={
                str(TABLE_ADDRESS): AccountInfoResult(
                    found=False, error_code="SERVER_ERROR", detail="node unhealthy"
                )
            }
        )
        orchestrator, _ = _orchestrator(client)
        with pytest.raises(ConnectionError, match="node unhealthy"):
            await orchestrator.load_lookup_table(TABLE_ADDRESS)

    @pytest.mark.asyncio
    async def test_malformed_data(self) -> None:
        client = FakeLedgerClient(
            accounts={str(TABLE_ADDRESS): AccountInfoResult(found=True, data=b"\x00" * 70)}
        )
        orchestrator, _ = _orchestrator(client)
        with pytest.raises(ValueError, match="not a lookup table"):
            await orchestrator.load_lookup_table(TABLE_ADDRESS)


class TestGasHandlerDeployed:
    @pytest.mark.asyncio
    async def test_executable_account(self) -> None:
        client = FakeLedgerClient(
            accounts={str(DEFAULT_GAS_HANDLER_PROGRAM_ID): AccountInfoResult(found=True, executable=True)}
        )
        orchestrator, _ = _orchestrator(client)
        assert await orchestrator.gas_handler_deployed() is True

    @pytest.mark.asyncio
    async def test_missing_account(self) -> None:
        orchestrator, _ = _orchestrator(FakeLedgerClient())
        assert await orchestrator.gas_handler_deployed() is False

    @pytest.mark.asyncio
    async def test_non_executable_account(self) -> None:
        client = FakeLedgerClient(
            accounts={str(DEFAULT_GAS_HANDLER_PROGRAM_ID): AccountInfoResult(found=True)}
        )
        orchestrator, _ = _orchestrator(client)
        assert await orchestrator.gas_handler_deployed() is False

    @pytest.mark.asyncio
    async def test_read_failure_treated_as_absent(self) -> None:
        client = FakeLedgerClient(
            accounts={str(DEFAULT_GAS_HANDLER_PROGRAM_ID): ConnectionError("refused")}
        )
        orchestrator, _ = _orchestrator(client)
        assert await orchestrator.gas_handler_deployed() is False
