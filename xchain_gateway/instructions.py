"""
Instruction builders for the gateway, fee handler and gas handler programs.

Pure functions: an account record from accounts.py plus positional
arguments in, a ``solders`` Instruction out. No network, no signing.

Instruction data:
    sha256("global:<snake_case_name>")[:8] ∥ Borsh(args)

Borsh encoding used here:
    u8 / u16 / u64 / u128   little-endian fixed width
    bool                     one byte, 0 or 1
    bytes                    u32 LE length ∥ data
    Pubkey                   32 raw bytes
    Vec<Pubkey>              u32 LE count ∥ 32 bytes each
    Option<T>                0, or 1 ∥ T
    unit enum                one-byte ordinal

The (txId, sourceChainId, destChainId, sender, recipient, onChainData,
offChainData) argument list of create_tx_pda and process_message
serializes to exactly the canonical message encoding, so those two
builders reuse ``encode_message``.
"""

from __future__ import annotations

import hashlib
import struct
from typing import Sequence

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from xchain_gateway.accounts import (
    AccountsLayout,
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
from xchain_gateway.addresses import RegistryType
from xchain_gateway.constants import (
    DEFAULT_FEE_HANDLER_PROGRAM_ID,
    DEFAULT_GAS_HANDLER_PROGRAM_ID,
    GATEWAY_PROGRAM_ID,
)
from xchain_gateway.message import U64_MAX, CrossChainMessage, encode_message

MAX_REGISTRY_SIGNERS = 10


def anchor_discriminator(name: str) -> bytes:
    """First 8 bytes of ``sha256("global:" + name)``."""
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


# =========================================================================
# Borsh argument encoding
# =========================================================================


def encode_u8(value: int) -> bytes:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"u8 out of range: {value}")
    return struct.pack("<B", value)


def encode_u16(value: int) -> bytes:
    if not 0 <= value <= 0xFFFF:
        raise ValueError(f"u16 out of range: {value}")
    return struct.pack("<H", value)


def encode_u64(value: int) -> bytes:
    if not 0 <= value <= U64_MAX:
        raise ValueError(f"u64 out of range: {value}")
    return struct.pack("<Q", value)


def encode_bool(value: bool) -> bytes:
    return b"\x01" if value else b"\x00"


def encode_bytes(value: bytes) -> bytes:
    return struct.pack("<I", len(value)) + bytes(value)


def encode_pubkey_vec(keys: Sequence[Pubkey]) -> bytes:
    return struct.pack("<I", len(keys)) + b"".join(bytes(k) for k in keys)


def encode_option_u64(value: int | None) -> bytes:
    return b"\x00" if value is None else b"\x01" + encode_u64(value)


def encode_option_pubkey(value: Pubkey | None) -> bytes:
    return b"\x00" if value is None else b"\x01" + bytes(value)


def _registry_args(registry_type: RegistryType, chain_id: int) -> bytes:
    return encode_u8(RegistryType(registry_type).discriminant) + encode_u64(chain_id)


def _instruction(
    name: str,
    args: bytes,
    accounts: AccountsLayout,
    program_id: Pubkey,
    remaining_accounts: Sequence[AccountMeta] = (),
) -> Instruction:
    metas = accounts.account_metas(program_id) + list(remaining_accounts)
    return Instruction(program_id, anchor_discriminator(name) + args, metas)


# =========================================================================
# Gateway program
# =========================================================================


def initialize_gateway(
    accounts: InitializeGatewayAccounts,
    chain_id: int,
    program_id: Pubkey = GATEWAY_PROGRAM_ID,
) -> Instruction:
    return _instruction("initialize_gateway", encode_u64(chain_id), accounts, program_id)


def set_system_enabled(
    accounts: SetSystemEnabledAccounts,
    enabled: bool,
    program_id: Pubkey = GATEWAY_PROGRAM_ID,
) -> Instruction:
    return _instruction("set_system_enabled", encode_bool(enabled), accounts, program_id)


def initialize_counter(
    accounts: InitializeCounterAccounts,
    source_chain_id: int,
    program_id: Pubkey = GATEWAY_PROGRAM_ID,
) -> Instruction:
    return _instruction(
        "initialize_counter", encode_u64(source_chain_id), accounts, program_id
    )


def send_message(
    accounts: SendMessageAccounts,
    client_program_id: Pubkey,
    recipient: bytes,
    dest_chain_id: int,
    chain_data: bytes,
    confirmations: int = 32,
    program_id: Pubkey = GATEWAY_PROGRAM_ID,
) -> Instruction:
    """Outbound message; the tx id is assigned by the outbound counter."""
    args = (
        bytes(client_program_id)
        + encode_bytes(recipient)
        + encode_u64(dest_chain_id)
        + encode_bytes(chain_data)
        + encode_u16(confirmations)
    )
    return _instruction("send_message", args, accounts, program_id)


def create_tx_pda(
    accounts: CreateTxPdaAccounts,
    message: CrossChainMessage,
    program_id: Pubkey = GATEWAY_PROGRAM_ID,
) -> Instruction:
    """Create the replay-guard record for ``message``."""
    return _instruction("create_tx_pda", encode_message(message), accounts, program_id)


def process_message(
    accounts: ProcessMessageAccounts,
    message: CrossChainMessage,
    remaining_accounts: Sequence[Pubkey] = (),
    program_id: Pubkey = GATEWAY_PROGRAM_ID,
) -> Instruction:
    """Process ``message`` against its replay-guard record.

    ``remaining_accounts`` are appended after the fixed slots, writable
    and non-signing, for the client program's CPI.
    """
    extra = [
        AccountMeta(pubkey=key, is_signer=False, is_writable=True)
        for key in remaining_accounts
    ]
    return _instruction(
        "process_message", encode_message(message), accounts, program_id, extra
    )


def initialize_signer_registry(
    accounts: InitializeSignerRegistryAccounts,
    registry_type: RegistryType,
    chain_id: int,
    signers: Sequence[Pubkey],
    threshold: int,
    program_id: Pubkey = GATEWAY_PROGRAM_ID,
) -> Instruction:
    if len(signers) > MAX_REGISTRY_SIGNERS:
        raise ValueError(
            f"a registry holds at most {MAX_REGISTRY_SIGNERS} signers, got {len(signers)}"
        )
    args = _registry_args(registry_type, chain_id) + encode_pubkey_vec(signers) + encode_u8(threshold)
    return _instruction("initialize_signer_registry", args, accounts, program_id)


def add_signer(
    accounts: SignerRegistryAdminAccounts,
    registry_type: RegistryType,
    chain_id: int,
    signer: Pubkey,
    program_id: Pubkey = GATEWAY_PROGRAM_ID,
) -> Instruction:
    args = _registry_args(registry_type, chain_id) + bytes(signer)
    return _instruction("add_signer", args, accounts, program_id)


def remove_signer(
    accounts: SignerRegistryAdminAccounts,
    registry_type: RegistryType,
    chain_id: int,
    signer: Pubkey,
    program_id: Pubkey = GATEWAY_PROGRAM_ID,
) -> Instruction:
    args = _registry_args(registry_type, chain_id) + bytes(signer)
    return _instruction("remove_signer", args, accounts, program_id)


def update_signers(
    accounts: SignerRegistryAdminAccounts,
    registry_type: RegistryType,
    chain_id: int,
    signers: Sequence[Pubkey],
    threshold: int,
    program_id: Pubkey = GATEWAY_PROGRAM_ID,
) -> Instruction:
    if len(signers) > MAX_REGISTRY_SIGNERS:
        raise ValueError(
            f"a registry holds at most {MAX_REGISTRY_SIGNERS} signers, got {len(signers)}"
        )
    args = _registry_args(registry_type, chain_id) + encode_pubkey_vec(signers) + encode_u8(threshold)
    return _instruction("update_signers", args, accounts, program_id)


def update_threshold(
    accounts: SignerRegistryAdminAccounts,
    registry_type: RegistryType,
    chain_id: int,
    threshold: int,
    program_id: Pubkey = GATEWAY_PROGRAM_ID,
) -> Instruction:
    args = _registry_args(registry_type, chain_id) + encode_u8(threshold)
    return _instruction("update_threshold", args, accounts, program_id)


def set_registry_enabled(
    accounts: SignerRegistryAdminAccounts,
    registry_type: RegistryType,
    chain_id: int,
    enabled: bool,
    program_id: Pubkey = GATEWAY_PROGRAM_ID,
) -> Instruction:
    args = _registry_args(registry_type, chain_id) + encode_bool(enabled)
    return _instruction("set_registry_enabled", args, accounts, program_id)


# =========================================================================
# Fee handler program
# =========================================================================


def initialize_fee_config(
    accounts: InitializeFeeConfigAccounts,
    min_fee: int,
    program_id: Pubkey = DEFAULT_FEE_HANDLER_PROGRAM_ID,
) -> Instruction:
    return _instruction("initialize_fee_config", encode_u64(min_fee), accounts, program_id)


def initialize_client_fee_config(
    accounts: InitializeClientFeeConfigAccounts,
    custom_fee: int | None = None,
    max_fee: int | None = None,
    zero_fee: bool = False,
    program_id: Pubkey = DEFAULT_FEE_HANDLER_PROGRAM_ID,
) -> Instruction:
    args = encode_option_u64(custom_fee) + encode_option_u64(max_fee) + encode_bool(zero_fee)
    return _instruction("initialize_client_fee_config", args, accounts, program_id)


def update_fee_config(
    accounts: FeeConfigAdminAccounts,
    new_accountant: Pubkey | None = None,
    new_min_fee: int | None = None,
    program_id: Pubkey = DEFAULT_FEE_HANDLER_PROGRAM_ID,
) -> Instruction:
    args = encode_option_pubkey(new_accountant) + encode_option_u64(new_min_fee)
    return _instruction("update_fee_config", args, accounts, program_id)


def set_fee_offline(
    accounts: FeeConfigAdminAccounts,
    offline: bool,
    program_id: Pubkey = DEFAULT_FEE_HANDLER_PROGRAM_ID,
) -> Instruction:
    return _instruction("set_offline", encode_bool(offline), accounts, program_id)


def update_client_fee_config(
    accounts: UpdateClientFeeConfigAccounts,
    custom_fee: int | None = None,
    max_fee: int | None = None,
    zero_fee: bool = False,
    program_id: Pubkey = DEFAULT_FEE_HANDLER_PROGRAM_ID,
) -> Instruction:
    args = encode_option_u64(custom_fee) + encode_option_u64(max_fee) + encode_bool(zero_fee)
    return _instruction("update_client_config", args, accounts, program_id)


# =========================================================================
# Gas handler program
# =========================================================================


def initialize_gas_config(
    accounts: InitializeGasConfigAccounts,
    base_reimbursement: int,
    max_reimbursement: int,
    program_id: Pubkey = DEFAULT_GAS_HANDLER_PROGRAM_ID,
) -> Instruction:
    args = encode_u64(base_reimbursement) + encode_u64(max_reimbursement)
    return _instruction("initialize_gas_config", args, accounts, program_id)


def initialize_gas_pool(
    accounts: InitializeGasPoolAccounts,
    program_id: Pubkey = DEFAULT_GAS_HANDLER_PROGRAM_ID,
) -> Instruction:
    return _instruction("initialize_gas_pool", b"", accounts, program_id)


def fund_gas_pool(
    accounts: FundGasPoolAccounts,
    amount: int,
    program_id: Pubkey = DEFAULT_GAS_HANDLER_PROGRAM_ID,
) -> Instruction:
    return _instruction("fund_gas_pool", encode_u64(amount), accounts, program_id)


def initialize_client_gas_config(
    accounts: InitializeClientGasConfigAccounts,
    gas_token_mint: Pubkey,
    max_gas_override: int | None = None,
    enabled: bool = True,
    program_id: Pubkey = DEFAULT_GAS_HANDLER_PROGRAM_ID,
) -> Instruction:
    args = encode_option_u64(max_gas_override) + bytes(gas_token_mint) + encode_bool(enabled)
    return _instruction("initialize_client_gas_config", args, accounts, program_id)


def update_gas_config(
    accounts: GasConfigAdminAccounts,
    new_base_reimbursement: int | None = None,
    new_max_reimbursement: int | None = None,
    program_id: Pubkey = DEFAULT_GAS_HANDLER_PROGRAM_ID,
) -> Instruction:
    args = encode_option_u64(new_base_reimbursement) + encode_option_u64(new_max_reimbursement)
    return _instruction("update_gas_config", args, accounts, program_id)


def set_gas_enabled(
    accounts: GasConfigAdminAccounts,
    enabled: bool,
    program_id: Pubkey = DEFAULT_GAS_HANDLER_PROGRAM_ID,
) -> Instruction:
    return _instruction("set_enabled", encode_bool(enabled), accounts, program_id)


def update_client_gas_config(
    accounts: UpdateClientGasConfigAccounts,
    max_gas_override: int | None = None,
    enabled: bool = True,
    program_id: Pubkey = DEFAULT_GAS_HANDLER_PROGRAM_ID,
) -> Instruction:
    args = encode_option_u64(max_gas_override) + encode_bool(enabled)
    return _instruction("update_client_config", args, accounts, program_id)
