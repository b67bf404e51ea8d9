"""
Per-operation account layouts.

The verifying program reads its accounts positionally, so each
operation gets its own frozen record listing every slot in program
order. Optional slots are typed ``Pubkey | Absent`` and default to
``ABSENT``; they are never dropped from the list. An absent slot is
encoded as the invoked program's own id, read-only and non-signing.

Slot flags (writable, signer, optional) live in the dataclass field
metadata, declared with ``account()``. Field order is wire order.
"""

from __future__ import annotations

from dataclasses import MISSING, Field, dataclass, field, fields
from enum import Enum
from typing import Any

from solders.instruction import AccountMeta
from solders.pubkey import Pubkey

from xchain_gateway.constants import (
    SYSTEM_PROGRAM_ID,
    SYSVAR_INSTRUCTIONS_ID,
    TOKEN_PROGRAM_ID,
)


class Absent(Enum):
    """Marker for an optional account slot that is not supplied."""

    ABSENT = "absent"

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = Absent.ABSENT


def account(
    *,
    writable: bool = False,
    signer: bool = False,
    optional: bool = False,
    default: Any = MISSING,
) -> Any:
    """Declare an account slot."""
    if optional and default is MISSING:
        default = ABSENT
    return field(
        default=default,
        metadata={"writable": writable, "signer": signer, "optional": optional},
    )


class AccountsLayout:
    """Base for account records. Subclasses are frozen, kw-only dataclasses."""

    def __post_init__(self) -> None:
        for slot in self.slots():
            value = getattr(self, slot.name)
            if value is ABSENT:
                if not slot.metadata["optional"]:
                    raise ValueError(
                        f"{type(self).__name__}.{slot.name} is required"
                    )
            elif not isinstance(value, Pubkey):
                raise TypeError(
                    f"{type(self).__name__}.{slot.name} must be a Pubkey, "
                    f"got {type(value).__name__}"
                )

    @classmethod
    def slots(cls) -> tuple[Field[Any], ...]:
        return fields(cls)  # type: ignore[arg-type]

    def account_metas(self, program_id: Pubkey) -> list[AccountMeta]:
        """Account metas in wire order; absent slots become ``program_id``."""
        metas: list[AccountMeta] = []
        for slot in self.slots():
            value = getattr(self, slot.name)
            if value is ABSENT:
                metas.append(AccountMeta(pubkey=program_id, is_signer=False, is_writable=False))
            else:
                metas.append(
                    AccountMeta(
                        pubkey=value,
                        is_signer=slot.metadata["signer"],
                        is_writable=slot.metadata["writable"],
                    )
                )
        return metas


# =========================================================================
# Gateway program
# =========================================================================


@dataclass(frozen=True, kw_only=True)
class InitializeGatewayAccounts(AccountsLayout):
    gateway: Pubkey = account(writable=True)
    counter: Pubkey = account(writable=True)
    authority: Pubkey = account(writable=True, signer=True)
    system_program: Pubkey = account(default=SYSTEM_PROGRAM_ID)


@dataclass(frozen=True, kw_only=True)
class SetSystemEnabledAccounts(AccountsLayout):
    gateway: Pubkey = account(writable=True)
    authority: Pubkey = account(signer=True)


@dataclass(frozen=True, kw_only=True)
class InitializeCounterAccounts(AccountsLayout):
    counter_pda: Pubkey = account(writable=True)
    authority: Pubkey = account(writable=True, signer=True)
    gateway: Pubkey = account()
    system_program: Pubkey = account(default=SYSTEM_PROGRAM_ID)


@dataclass(frozen=True, kw_only=True)
class SendMessageAccounts(AccountsLayout):
    gateway: Pubkey = account()
    counter: Pubkey = account(writable=True)
    sender: Pubkey = account(signer=True)
    sender_program: Pubkey = account()
    fee_handler_program: Pubkey = account()
    fee_config: Pubkey = account()
    client_fee_config: Pubkey = account()
    fee_payer: Pubkey = account(signer=True)
    fee_payer_token_account: Pubkey = account(writable=True)
    accountant_token_account: Pubkey = account(writable=True)
    token_program: Pubkey = account(default=TOKEN_PROGRAM_ID)


@dataclass(frozen=True, kw_only=True)
class CreateTxPdaAccounts(AccountsLayout):
    tx_id_pda: Pubkey = account(writable=True)
    counter_pda: Pubkey = account(writable=True)
    relayer: Pubkey = account(writable=True, signer=True)
    instructions: Pubkey = account(default=SYSVAR_INSTRUCTIONS_ID)
    system_program: Pubkey = account(default=SYSTEM_PROGRAM_ID)


@dataclass(frozen=True, kw_only=True)
class ProcessMessageAccounts(AccountsLayout):
    """Accounts for process_message.

    ``decoded_message_pda`` and ``client_config`` are present only when a
    client program receives the message. The four gas slots are present
    only when the gas handler is deployed; ``client_gas_config`` also
    needs a client program.

    The program declares ``decoded_message_pda`` writable and required.
    The absent encoding (program id, read-only) fails that constraint on
    chain, so a message with no client program is rejected by the
    deployed verifier.
    """

    gateway: Pubkey = account()
    tx_id_pda: Pubkey = account(writable=True)
    via_registry: Pubkey = account()
    chain_registry: Pubkey = account()
    project_registry: Pubkey | Absent = account(optional=True)
    relayer: Pubkey = account(writable=True, signer=True)
    decoded_message_pda: Pubkey | Absent = account(writable=True, optional=True)
    client_config: Pubkey | Absent = account(optional=True)
    instructions: Pubkey = account(default=SYSVAR_INSTRUCTIONS_ID)
    system_program: Pubkey = account(default=SYSTEM_PROGRAM_ID)
    gas_handler_program: Pubkey | Absent = account(optional=True)
    gas_config: Pubkey | Absent = account(optional=True)
    client_gas_config: Pubkey | Absent = account(optional=True)
    gas_pool: Pubkey | Absent = account(writable=True, optional=True)


@dataclass(frozen=True, kw_only=True)
class InitializeSignerRegistryAccounts(AccountsLayout):
    signer_registry: Pubkey = account(writable=True)
    gateway: Pubkey = account()
    authority: Pubkey = account(writable=True, signer=True)
    system_program: Pubkey = account(default=SYSTEM_PROGRAM_ID)


@dataclass(frozen=True, kw_only=True)
class SignerRegistryAdminAccounts(AccountsLayout):
    """Shared by add/remove/update signers, update threshold and enable/disable."""

    signer_registry: Pubkey = account(writable=True)
    gateway: Pubkey = account()
    authority: Pubkey = account(signer=True)


# =========================================================================
# Fee handler program
# =========================================================================


@dataclass(frozen=True, kw_only=True)
class InitializeFeeConfigAccounts(AccountsLayout):
    fee_config: Pubkey = account(writable=True)
    gateway: Pubkey = account()
    fee_token_mint: Pubkey = account()
    accountant: Pubkey = account()
    authority: Pubkey = account(writable=True, signer=True)
    system_program: Pubkey = account(default=SYSTEM_PROGRAM_ID)
    token_program: Pubkey = account(default=TOKEN_PROGRAM_ID)


@dataclass(frozen=True, kw_only=True)
class InitializeClientFeeConfigAccounts(AccountsLayout):
    client_config: Pubkey = account(writable=True)
    fee_config: Pubkey = account()
    gateway: Pubkey = account()
    client_program: Pubkey = account()
    authority: Pubkey = account(writable=True, signer=True)
    system_program: Pubkey = account(default=SYSTEM_PROGRAM_ID)


@dataclass(frozen=True, kw_only=True)
class FeeConfigAdminAccounts(AccountsLayout):
    """Shared by update_fee_config and set_offline."""

    fee_config: Pubkey = account(writable=True)
    gateway: Pubkey = account()
    authority: Pubkey = account(signer=True)


@dataclass(frozen=True, kw_only=True)
class UpdateClientFeeConfigAccounts(AccountsLayout):
    client_config: Pubkey = account(writable=True)
    fee_config: Pubkey = account()
    gateway: Pubkey = account()
    client_program: Pubkey = account()
    authority: Pubkey = account(signer=True)


# =========================================================================
# Gas handler program
# =========================================================================


@dataclass(frozen=True, kw_only=True)
class InitializeGasConfigAccounts(AccountsLayout):
    gas_config: Pubkey = account(writable=True)
    gateway: Pubkey = account()
    authority: Pubkey = account(writable=True, signer=True)
    system_program: Pubkey = account(default=SYSTEM_PROGRAM_ID)


@dataclass(frozen=True, kw_only=True)
class InitializeGasPoolAccounts(AccountsLayout):
    gas_pool: Pubkey = account(writable=True)
    gateway: Pubkey = account()
    authority: Pubkey = account(writable=True, signer=True)
    system_program: Pubkey = account(default=SYSTEM_PROGRAM_ID)


@dataclass(frozen=True, kw_only=True)
class FundGasPoolAccounts(AccountsLayout):
    gas_pool: Pubkey = account(writable=True)
    gas_config: Pubkey = account()
    gateway: Pubkey = account()
    authority: Pubkey = account(signer=True)
    funder: Pubkey = account(writable=True, signer=True)
    system_program: Pubkey = account(default=SYSTEM_PROGRAM_ID)


@dataclass(frozen=True, kw_only=True)
class InitializeClientGasConfigAccounts(AccountsLayout):
    client_config: Pubkey = account(writable=True)
    gas_config: Pubkey = account()
    gateway: Pubkey = account()
    client_program: Pubkey = account()
    authority: Pubkey = account(writable=True, signer=True)
    system_program: Pubkey = account(default=SYSTEM_PROGRAM_ID)


@dataclass(frozen=True, kw_only=True)
class GasConfigAdminAccounts(AccountsLayout):
    """Shared by update_gas_config and set_enabled."""

    gas_config: Pubkey = account(writable=True)
    gateway: Pubkey = account()
    authority: Pubkey = account(signer=True)


@dataclass(frozen=True, kw_only=True)
class UpdateClientGasConfigAccounts(AccountsLayout):
    client_config: Pubkey = account(writable=True)
    gas_config: Pubkey = account()
    gateway: Pubkey = account()
    client_program: Pubkey = account()
    authority: Pubkey = account(signer=True)
