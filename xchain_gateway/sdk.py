"""
GatewaySDK — one coroutine per ledger operation.

Resolves every account an operation touches, builds the instruction,
and hands it to the orchestrator. Each coroutine returns a
SubmissionOutcome; local validation errors are raised before any
network call.

The signer is the authority, relayer and fee payer of every operation.
"""

from __future__ import annotations

from typing import Sequence

from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.pubkey import Pubkey

from xchain_gateway import instructions as ix
from xchain_gateway.accounts import (
    ABSENT,
    Absent,
    CreateTxPdaAccounts,
    FeeConfigAdminAccounts,
    FundGasPoolAccounts,
    GasConfigAdminAccounts,
    InitializeClientFeeConfigAccounts,
    InitializeClientGasConfigAccounts,
    InitializeCounterAccounts,
    InitializeFeeConfigAccounts,
    InitializeGasConfigAccounts,
    InitializeGasPoolAccounts,
    InitializeGatewayAccounts,
    InitializeSignerRegistryAccounts,
    ProcessMessageAccounts,
    SendMessageAccounts,
    SetSystemEnabledAccounts,
    SignerRegistryAdminAccounts,
    UpdateClientFeeConfigAccounts,
    UpdateClientGasConfigAccounts,
)
from xchain_gateway.addresses import AddressResolver, RegistryType
from xchain_gateway.client import LedgerClient
from xchain_gateway.config import GatewayConfig
from xchain_gateway.constants import SYSTEM_PROGRAM_ID
from xchain_gateway.message import CrossChainMessage
from xchain_gateway.orchestrator import SubmissionOutcome, TransactionOrchestrator
from xchain_gateway.signatures import (
    EncodingVariant,
    VerificationUnit,
    assemble_verification_instructions,
)
from xchain_gateway.signer import TransactionSigner


class GatewaySDK:
    """High-level client for the gateway and its handler programs.

    Args:
        client: Ledger network boundary.
        signer: Authority, relayer and fee payer.
        config: Program ids and submission tuning.
        orchestrator: Pre-built orchestrator (tests inject one with a
            fake sleep and clock). Built from the other arguments if None.
    """

    def __init__(
        self,
        client: LedgerClient,
        signer: TransactionSigner,
        config: GatewayConfig | None = None,
        *,
        orchestrator: TransactionOrchestrator | None = None,
    ) -> None:
        self._config = config or GatewayConfig()
        self._orchestrator = orchestrator or TransactionOrchestrator(
            client, signer, self._config
        )
        self._resolver = AddressResolver(
            gateway_program_id=self._config.gateway_program_id,
            fee_handler_program_id=self._config.fee_handler_program_id,
            gas_handler_program_id=self._config.gas_handler_program_id,
        )

    @property
    def resolver(self) -> AddressResolver:
        return self._resolver

    @property
    def orchestrator(self) -> TransactionOrchestrator:
        return self._orchestrator

    @property
    def authority(self) -> Pubkey:
        return self._orchestrator.payer

    async def load_lookup_table(self, address: Pubkey) -> AddressLookupTableAccount:
        return await self._orchestrator.load_lookup_table(address)

    # =====================================================================
    # Gateway operations
    # =====================================================================

    async def initialize_gateway(self, chain_id: int) -> SubmissionOutcome:
        accounts = InitializeGatewayAccounts(
            gateway=self._resolver.gateway(chain_id),
            counter=self._resolver.outbound_counter(chain_id),
            authority=self.authority,
        )
        return await self._orchestrator.submit(
            "initialize_gateway",
            ix.initialize_gateway(accounts, chain_id, self._config.gateway_program_id),
        )

    async def set_system_enabled(self, chain_id: int, enabled: bool) -> SubmissionOutcome:
        accounts = SetSystemEnabledAccounts(
            gateway=self._resolver.gateway(chain_id),
            authority=self.authority,
        )
        return await self._orchestrator.submit(
            "set_system_enabled",
            ix.set_system_enabled(accounts, enabled, self._config.gateway_program_id),
        )

    async def initialize_counter(
        self, source_chain_id: int, *, gateway_chain_id: int | None = None
    ) -> SubmissionOutcome:
        """Create the inbound counter for ``source_chain_id``.

        ``gateway_chain_id`` selects the gateway account; it defaults to
        ``source_chain_id``.
        """
        gateway_chain = source_chain_id if gateway_chain_id is None else gateway_chain_id
        accounts = InitializeCounterAccounts(
            counter_pda=self._resolver.inbound_counter(source_chain_id),
            authority=self.authority,
            gateway=self._resolver.gateway(gateway_chain),
        )
        return await self._orchestrator.submit(
            "initialize_counter",
            ix.initialize_counter(accounts, source_chain_id, self._config.gateway_program_id),
        )

    async def send_message(
        self,
        chain_id: int,
        client_program_id: Pubkey,
        recipient: bytes,
        dest_chain_id: int,
        chain_data: bytes,
        *,
        fee_payer_token_account: Pubkey,
        accountant_token_account: Pubkey,
        confirmations: int = 32,
    ) -> SubmissionOutcome:
        """Send an outbound message from ``chain_id``'s gateway.

        Normally a client program does this by CPI; calling it directly is
        for operators and tests.
        """
        gateway = self._resolver.gateway(chain_id)
        accounts = SendMessageAccounts(
            gateway=gateway,
            counter=self._resolver.outbound_counter(chain_id),
            sender=self.authority,
            sender_program=client_program_id,
            fee_handler_program=self._config.fee_handler_program_id,
            fee_config=self._resolver.fee_config(gateway),
            client_fee_config=self._resolver.client_fee_config(gateway, client_program_id),
            fee_payer=self.authority,
            fee_payer_token_account=fee_payer_token_account,
            accountant_token_account=accountant_token_account,
        )
        instruction = ix.send_message(
            accounts,
            client_program_id,
            recipient,
            dest_chain_id,
            chain_data,
            confirmations,
            self._config.gateway_program_id,
        )
        return await self._orchestrator.submit("send_message", instruction)

    # =====================================================================
    # Message operations (signature-carrying)
    # =====================================================================

    async def create_tx_pda_with_signatures(
        self,
        message: CrossChainMessage,
        units: Sequence[VerificationUnit],
        variant: EncodingVariant = EncodingVariant.STANDARD,
    ) -> SubmissionOutcome:
        """Create the replay-guard record, preceded by one verification
        instruction per unit.

        Raises:
            NoSignaturesProvided: ``units`` is empty.
            TooManySignatures: ``units`` exceeds the variant's cap.
            CompressionTableNotLoaded: Compact without a loaded table.
            EnvelopeTooLarge: The envelope would exceed the packet limit.
        """
        verification = assemble_verification_instructions(message, units, variant)
        accounts = CreateTxPdaAccounts(
            tx_id_pda=self._resolver.replay_guard(message.source_chain_id, message.tx_id),
            counter_pda=self._resolver.inbound_counter(message.source_chain_id),
            relayer=self.authority,
        )
        return await self._orchestrator.submit(
            "create_tx_pda",
            ix.create_tx_pda(accounts, message, self._config.gateway_program_id),
            verification=verification,
            variant=variant,
        )

    async def process_message_accounts(
        self,
        message: CrossChainMessage,
        *,
        include_project_registry: bool = False,
        remaining_accounts: Sequence[Pubkey] = (),
    ) -> ProcessMessageAccounts:
        """Resolve the fixed account list of process_message.

        The first remaining account, if any, is the client program that
        receives the message. Gas slots are filled only when the gas
        handler is deployed; this is the one account read made here.
        """
        resolver = self._resolver
        gateway = resolver.gateway(message.dest_chain_id)
        client_program = remaining_accounts[0] if remaining_accounts else None

        decoded: Pubkey | Absent = ABSENT
        client_config: Pubkey | Absent = ABSENT
        if client_program is not None:
            decoded = resolver.decoded_message(message.tx_id, client_program)
            client_config = resolver.client_config(client_program)

        gas_program: Pubkey | Absent = ABSENT
        gas_config: Pubkey | Absent = ABSENT
        client_gas_config: Pubkey | Absent = ABSENT
        gas_pool: Pubkey | Absent = ABSENT
        if await self._orchestrator.gas_handler_deployed():
            gas_program = self._config.gas_handler_program_id
            gas_config = resolver.gas_config(gateway)
            gas_pool = resolver.gas_pool(gateway)
            if client_program is not None:
                client_gas_config = resolver.client_gas_config(gateway, client_program)

        return ProcessMessageAccounts(
            gateway=gateway,
            tx_id_pda=resolver.replay_guard(message.source_chain_id, message.tx_id),
            via_registry=resolver.signer_registry(RegistryType.VIA, message.dest_chain_id),
            chain_registry=resolver.signer_registry(RegistryType.CHAIN, message.source_chain_id),
            project_registry=(
                resolver.signer_registry(RegistryType.PROJECT, message.dest_chain_id)
                if include_project_registry
                else ABSENT
            ),
            relayer=self.authority,
            decoded_message_pda=decoded,
            client_config=client_config,
            gas_handler_program=gas_program,
            gas_config=gas_config,
            client_gas_config=client_gas_config,
            gas_pool=gas_pool,
        )

    async def process_message_with_signatures(
        self,
        message: CrossChainMessage,
        units: Sequence[VerificationUnit],
        variant: EncodingVariant = EncodingVariant.STANDARD,
        *,
        include_project_registry: bool = False,
        remaining_accounts: Sequence[Pubkey] = (),
    ) -> SubmissionOutcome:
        """Process a message whose replay-guard record already exists.

        Args:
            message: The message, identical to the one used for
                create_tx_pda.
            units: Verification units in signer order.
            variant: Encoding variant.
            include_project_registry: Pass the destination's project
                registry instead of marking the slot absent.
            remaining_accounts: Client program first, then whatever it
                needs for its CPI. Appended writable, non-signing.
        """
        verification = assemble_verification_instructions(message, units, variant)
        accounts = await self.process_message_accounts(
            message,
            include_project_registry=include_project_registry,
            remaining_accounts=remaining_accounts,
        )
        return await self._orchestrator.submit(
            "process_message",
            ix.process_message(
                accounts, message, remaining_accounts, self._config.gateway_program_id
            ),
            verification=verification,
            variant=variant,
        )

    # =====================================================================
    # Signer registry operations
    # =====================================================================

    def _registry_admin_accounts(
        self, registry_type: RegistryType, chain_id: int
    ) -> SignerRegistryAdminAccounts:
        return SignerRegistryAdminAccounts(
            signer_registry=self._resolver.signer_registry(registry_type, chain_id),
            gateway=self._resolver.gateway(chain_id),
            authority=self.authority,
        )

    async def initialize_signer_registry(
        self,
        registry_type: RegistryType,
        chain_id: int,
        signers: Sequence[Pubkey] | None = None,
        threshold: int = 0,
    ) -> SubmissionOutcome:
        """Create a registry; ``signers`` defaults to the authority alone."""
        accounts = InitializeSignerRegistryAccounts(
            signer_registry=self._resolver.signer_registry(registry_type, chain_id),
            gateway=self._resolver.gateway(chain_id),
            authority=self.authority,
        )
        instruction = ix.initialize_signer_registry(
            accounts,
            registry_type,
            chain_id,
            [self.authority] if signers is None else signers,
            threshold,
            self._config.gateway_program_id,
        )
        return await self._orchestrator.submit(
            f"initialize_signer_registry({registry_type})", instruction
        )

    async def add_signer(
        self, registry_type: RegistryType, chain_id: int, signer: Pubkey
    ) -> SubmissionOutcome:
        accounts = self._registry_admin_accounts(registry_type, chain_id)
        return await self._orchestrator.submit(
            f"add_signer({registry_type})",
            ix.add_signer(accounts, registry_type, chain_id, signer, self._config.gateway_program_id),
        )

    async def remove_signer(
        self, registry_type: RegistryType, chain_id: int, signer: Pubkey
    ) -> SubmissionOutcome:
        accounts = self._registry_admin_accounts(registry_type, chain_id)
        return await self._orchestrator.submit(
            f"remove_signer({registry_type})",
            ix.remove_signer(accounts, registry_type, chain_id, signer, self._config.gateway_program_id),
        )

    async def update_signers(
        self,
        registry_type: RegistryType,
        chain_id: int,
        signers: Sequence[Pubkey],
        threshold: int,
    ) -> SubmissionOutcome:
        accounts = self._registry_admin_accounts(registry_type, chain_id)
        return await self._orchestrator.submit(
            f"update_signers({registry_type})",
            ix.update_signers(
                accounts, registry_type, chain_id, signers, threshold,
                self._config.gateway_program_id,
            ),
        )

    async def update_threshold(
        self, registry_type: RegistryType, chain_id: int, threshold: int
    ) -> SubmissionOutcome:
        accounts = self._registry_admin_accounts(registry_type, chain_id)
        return await self._orchestrator.submit(
            f"update_threshold({registry_type})",
            ix.update_threshold(
                accounts, registry_type, chain_id, threshold, self._config.gateway_program_id
            ),
        )

    async def set_registry_enabled(
        self, registry_type: RegistryType, chain_id: int, enabled: bool
    ) -> SubmissionOutcome:
        accounts = self._registry_admin_accounts(registry_type, chain_id)
        return await self._orchestrator.submit(
            f"set_registry_enabled({registry_type})",
            ix.set_registry_enabled(
                accounts, registry_type, chain_id, enabled, self._config.gateway_program_id
            ),
        )

    # =====================================================================
    # Fee handler operations
    # =====================================================================

    async def initialize_fee_config(
        self,
        gateway: Pubkey,
        fee_token_mint: Pubkey,
        accountant: Pubkey,
        min_fee: int,
    ) -> SubmissionOutcome:
        """Create the fee config for ``gateway``.

        ``min_fee`` is in the fee token's 6-decimal units.
        """
        accounts = InitializeFeeConfigAccounts(
            fee_config=self._resolver.fee_config(gateway),
            gateway=gateway,
            fee_token_mint=fee_token_mint,
            accountant=accountant,
            authority=self.authority,
        )
        return await self._orchestrator.submit(
            "initialize_fee_config",
            ix.initialize_fee_config(accounts, min_fee, self._config.fee_handler_program_id),
        )

    async def initialize_client_fee_config(
        self,
        gateway: Pubkey,
        client_program_id: Pubkey,
        custom_fee: int | None = None,
        max_fee: int | None = None,
        zero_fee: bool = False,
    ) -> SubmissionOutcome:
        accounts = InitializeClientFeeConfigAccounts(
            client_config=self._resolver.client_fee_config(gateway, client_program_id),
            fee_config=self._resolver.fee_config(gateway),
            gateway=gateway,
            client_program=client_program_id,
            authority=self.authority,
        )
        return await self._orchestrator.submit(
            "initialize_client_fee_config",
            ix.initialize_client_fee_config(
                accounts, custom_fee, max_fee, zero_fee, self._config.fee_handler_program_id
            ),
        )

    async def update_fee_config(
        self,
        gateway: Pubkey,
        new_accountant: Pubkey | None = None,
        new_min_fee: int | None = None,
    ) -> SubmissionOutcome:
        accounts = FeeConfigAdminAccounts(
            fee_config=self._resolver.fee_config(gateway),
            gateway=gateway,
            authority=self.authority,
        )
        return await self._orchestrator.submit(
            "update_fee_config",
            ix.update_fee_config(
                accounts, new_accountant, new_min_fee, self._config.fee_handler_program_id
            ),
        )

    async def set_fee_offline(self, gateway: Pubkey, offline: bool) -> SubmissionOutcome:
        accounts = FeeConfigAdminAccounts(
            fee_config=self._resolver.fee_config(gateway),
            gateway=gateway,
            authority=self.authority,
        )
        return await self._orchestrator.submit(
            "set_fee_offline",
            ix.set_fee_offline(accounts, offline, self._config.fee_handler_program_id),
        )

    async def update_client_fee_config(
        self,
        gateway: Pubkey,
        client_program_id: Pubkey,
        custom_fee: int | None = None,
        max_fee: int | None = None,
        zero_fee: bool = False,
    ) -> SubmissionOutcome:
        accounts = UpdateClientFeeConfigAccounts(
            client_config=self._resolver.client_fee_config(gateway, client_program_id),
            fee_config=self._resolver.fee_config(gateway),
            gateway=gateway,
            client_program=client_program_id,
            authority=self.authority,
        )
        return await self._orchestrator.submit(
            "update_client_fee_config",
            ix.update_client_fee_config(
                accounts, custom_fee, max_fee, zero_fee, self._config.fee_handler_program_id
            ),
        )

    # =====================================================================
    # Gas handler operations
    # =====================================================================

    async def initialize_gas_config(
        self, gateway: Pubkey, base_reimbursement: int, max_reimbursement: int
    ) -> SubmissionOutcome:
        """Create the gas config for ``gateway``. Amounts are in lamports."""
        accounts = InitializeGasConfigAccounts(
            gas_config=self._resolver.gas_config(gateway),
            gateway=gateway,
            authority=self.authority,
        )
        return await self._orchestrator.submit(
            "initialize_gas_config",
            ix.initialize_gas_config(
                accounts, base_reimbursement, max_reimbursement,
                self._config.gas_handler_program_id,
            ),
        )

    async def initialize_gas_pool(self, gateway: Pubkey) -> SubmissionOutcome:
        accounts = InitializeGasPoolAccounts(
            gas_pool=self._resolver.gas_pool(gateway),
            gateway=gateway,
            authority=self.authority,
        )
        return await self._orchestrator.submit(
            "initialize_gas_pool",
            ix.initialize_gas_pool(accounts, self._config.gas_handler_program_id),
        )

    async def fund_gas_pool(self, gateway: Pubkey, amount: int) -> SubmissionOutcome:
        accounts = FundGasPoolAccounts(
            gas_pool=self._resolver.gas_pool(gateway),
            gas_config=self._resolver.gas_config(gateway),
            gateway=gateway,
            authority=self.authority,
            funder=self.authority,
        )
        return await self._orchestrator.submit(
            "fund_gas_pool",
            ix.fund_gas_pool(accounts, amount, self._config.gas_handler_program_id),
        )

    async def initialize_client_gas_config(
        self,
        gateway: Pubkey,
        client_program_id: Pubkey,
        max_gas_override: int | None = None,
        gas_token_mint: Pubkey = SYSTEM_PROGRAM_ID,
        enabled: bool = True,
    ) -> SubmissionOutcome:
        """``gas_token_mint`` defaults to the system program (native SOL)."""
        accounts = InitializeClientGasConfigAccounts(
            client_config=self._resolver.client_gas_config(gateway, client_program_id),
            gas_config=self._resolver.gas_config(gateway),
            gateway=gateway,
            client_program=client_program_id,
            authority=self.authority,
        )
        return await self._orchestrator.submit(
            "initialize_client_gas_config",
            ix.initialize_client_gas_config(
                accounts, gas_token_mint, max_gas_override, enabled,
                self._config.gas_handler_program_id,
            ),
        )

    async def update_gas_config(
        self,
        gateway: Pubkey,
        new_base_reimbursement: int | None = None,
        new_max_reimbursement: int | None = None,
    ) -> SubmissionOutcome:
        accounts = GasConfigAdminAccounts(
            gas_config=self._resolver.gas_config(gateway),
            gateway=gateway,
            authority=self.authority,
        )
        return await self._orchestrator.submit(
            "update_gas_config",
            ix.update_gas_config(
                accounts, new_base_reimbursement, new_max_reimbursement,
                self._config.gas_handler_program_id,
            ),
        )

    async def set_gas_enabled(self, gateway: Pubkey, enabled: bool) -> SubmissionOutcome:
        accounts = GasConfigAdminAccounts(
            gas_config=self._resolver.gas_config(gateway),
            gateway=gateway,
            authority=self.authority,
        )
        return await self._orchestrator.submit(
            "set_gas_enabled",
            ix.set_gas_enabled(accounts, enabled, self._config.gas_handler_program_id),
        )

    async def update_client_gas_config(
        self,
        gateway: Pubkey,
        client_program_id: Pubkey,
        max_gas_override: int | None = None,
        enabled: bool = True,
    ) -> SubmissionOutcome:
        accounts = UpdateClientGasConfigAccounts(
            client_config=self._resolver.client_gas_config(gateway, client_program_id),
            gas_config=self._resolver.gas_config(gateway),
            gateway=gateway,
            client_program=client_program_id,
            authority=self.authority,
        )
        return await self._orchestrator.submit(
            "update_client_gas_config",
            ix.update_client_gas_config(
                accounts, max_gas_override, enabled, self._config.gas_handler_program_id
            ),
        )
