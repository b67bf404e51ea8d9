"""
Deterministic address resolver.

Every account a request touches is a program-derived address: a pure
function of ordered seed bytes and the owning program id. Nothing here
touches the network or caches a result; callers that need an address
twice compute it twice.

Seed grammar (integers little-endian, fixed width):

    gateway              "gateway" ∥ chainId(8)
    replay guard         "tx" ∥ sourceChainId(8) ∥ txId(16)
    inbound counter      "counter" ∥ sourceChainId(8)
    outbound counter     "tx_counter" ∥ chainId(8)
    signer registry      "signer_registry" ∥ registryType(1) ∥ chainId(8)
    fee config           "fee_config" ∥ gateway                  (fee handler)
    client fee config    "client_fee_config" ∥ gateway ∥ client  (fee handler)
    gas config           "gas_config" ∥ gateway                  (gas handler)
    client gas config    "client_gas_config" ∥ gateway ∥ client  (gas handler)
    gas pool             "gas_pool" ∥ gateway                    (gas handler)
    decoded message      "decoded" ∥ txId(16)                    (client program)
    client config        "client_config"                         (client program)

Registry ordinals must equal the verifying program's enum ordinals
(via=0, chain=1, project=2); a wrong ordinal derives a different,
valid-looking account.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from solders.pubkey import Pubkey

from xchain_gateway.constants import (
    CHAIN_ID_BYTES,
    DEFAULT_FEE_HANDLER_PROGRAM_ID,
    DEFAULT_GAS_HANDLER_PROGRAM_ID,
    GATEWAY_PROGRAM_ID,
    TX_ID_BYTES,
)
from xchain_gateway.message import validate_chain_id, validate_tx_id


class RegistryType(StrEnum):
    """Signer registry kinds."""

    VIA = "via"
    CHAIN = "chain"
    PROJECT = "project"

    @property
    def discriminant(self) -> int:
        """Enum ordinal used by the verifying program."""
        return _REGISTRY_DISCRIMINANTS[self]


_REGISTRY_DISCRIMINANTS: dict[RegistryType, int] = {
    RegistryType.VIA: 0,
    RegistryType.CHAIN: 1,
    RegistryType.PROJECT: 2,
}


def chain_id_bytes(chain_id: int) -> bytes:
    validate_chain_id(chain_id)
    return chain_id.to_bytes(CHAIN_ID_BYTES, "little")


def tx_id_bytes(tx_id: int) -> bytes:
    validate_tx_id(tx_id)
    return tx_id.to_bytes(TX_ID_BYTES, "little")


# =========================================================================
# AddressDescriptor
# =========================================================================


@dataclass(frozen=True)
class AddressDescriptor:
    """Ordered seeds plus the owning program."""

    seeds: tuple[bytes, ...]
    program_id: Pubkey

    def find(self) -> tuple[Pubkey, int]:
        """Return ``(address, bump)``; bump search runs from 255 down."""
        return Pubkey.find_program_address(list(self.seeds), self.program_id)

    @property
    def address(self) -> Pubkey:
        return self.find()[0]


def gateway_descriptor(chain_id: int, program_id: Pubkey) -> AddressDescriptor:
    return AddressDescriptor((b"gateway", chain_id_bytes(chain_id)), program_id)


def replay_guard_descriptor(
    source_chain_id: int,
    tx_id: int,
    program_id: Pubkey,
) -> AddressDescriptor:
    return AddressDescriptor(
        (b"tx", chain_id_bytes(source_chain_id), tx_id_bytes(tx_id)),
        program_id,
    )


def inbound_counter_descriptor(source_chain_id: int, program_id: Pubkey) -> AddressDescriptor:
    return AddressDescriptor((b"counter", chain_id_bytes(source_chain_id)), program_id)


def outbound_counter_descriptor(chain_id: int, program_id: Pubkey) -> AddressDescriptor:
    return AddressDescriptor((b"tx_counter", chain_id_bytes(chain_id)), program_id)


def signer_registry_descriptor(
    registry_type: RegistryType,
    chain_id: int,
    program_id: Pubkey,
) -> AddressDescriptor:
    return AddressDescriptor(
        (
            b"signer_registry",
            bytes([RegistryType(registry_type).discriminant]),
            chain_id_bytes(chain_id),
        ),
        program_id,
    )


def fee_config_descriptor(gateway: Pubkey, fee_program_id: Pubkey) -> AddressDescriptor:
    return AddressDescriptor((b"fee_config", bytes(gateway)), fee_program_id)


def client_fee_config_descriptor(
    gateway: Pubkey,
    client_program_id: Pubkey,
    fee_program_id: Pubkey,
) -> AddressDescriptor:
    return AddressDescriptor(
        (b"client_fee_config", bytes(gateway), bytes(client_program_id)),
        fee_program_id,
    )


def gas_config_descriptor(gateway: Pubkey, gas_program_id: Pubkey) -> AddressDescriptor:
    return AddressDescriptor((b"gas_config", bytes(gateway)), gas_program_id)


def client_gas_config_descriptor(
    gateway: Pubkey,
    client_program_id: Pubkey,
    gas_program_id: Pubkey,
) -> AddressDescriptor:
    return AddressDescriptor(
        (b"client_gas_config", bytes(gateway), bytes(client_program_id)),
        gas_program_id,
    )


def gas_pool_descriptor(gateway: Pubkey, gas_program_id: Pubkey) -> AddressDescriptor:
    return AddressDescriptor((b"gas_pool", bytes(gateway)), gas_program_id)


def decoded_message_descriptor(tx_id: int, client_program_id: Pubkey) -> AddressDescriptor:
    """Seeded with the 16-byte tx id, as process_message passes it.

    An 8-byte tx id seed derives a different address and is not supported.
    """
    return AddressDescriptor((b"decoded", tx_id_bytes(tx_id)), client_program_id)


def client_config_descriptor(client_program_id: Pubkey) -> AddressDescriptor:
    return AddressDescriptor((b"client_config",), client_program_id)


# =========================================================================
# AddressResolver
# =========================================================================


class AddressResolver:
    """Resolves addresses against a fixed set of program ids.

    Holds only the three program ids it was constructed with. Every
    method recomputes its result.

    Args:
        gateway_program_id: The verifying (gateway) program.
        fee_handler_program_id: Owner of fee config accounts.
        gas_handler_program_id: Owner of gas config and pool accounts.
    """

    def __init__(
        self,
        gateway_program_id: Pubkey = GATEWAY_PROGRAM_ID,
        fee_handler_program_id: Pubkey = DEFAULT_FEE_HANDLER_PROGRAM_ID,
        gas_handler_program_id: Pubkey = DEFAULT_GAS_HANDLER_PROGRAM_ID,
    ) -> None:
        self.gateway_program_id = gateway_program_id
        self.fee_handler_program_id = fee_handler_program_id
        self.gas_handler_program_id = gas_handler_program_id

    # --- Gateway program ---

    def gateway(self, chain_id: int) -> Pubkey:
        return gateway_descriptor(chain_id, self.gateway_program_id).address

    def replay_guard(self, source_chain_id: int, tx_id: int) -> Pubkey:
        return replay_guard_descriptor(source_chain_id, tx_id, self.gateway_program_id).address

    def inbound_counter(self, source_chain_id: int) -> Pubkey:
        return inbound_counter_descriptor(source_chain_id, self.gateway_program_id).address

    def outbound_counter(self, chain_id: int) -> Pubkey:
        return outbound_counter_descriptor(chain_id, self.gateway_program_id).address

    def signer_registry(self, registry_type: RegistryType, chain_id: int) -> Pubkey:
        return signer_registry_descriptor(
            registry_type, chain_id, self.gateway_program_id
        ).address

    # --- Handler programs ---

    def fee_config(self, gateway: Pubkey) -> Pubkey:
        return fee_config_descriptor(gateway, self.fee_handler_program_id).address

    def client_fee_config(self, gateway: Pubkey, client_program_id: Pubkey) -> Pubkey:
        return client_fee_config_descriptor(
            gateway, client_program_id, self.fee_handler_program_id
        ).address

    def gas_config(self, gateway: Pubkey) -> Pubkey:
        return gas_config_descriptor(gateway, self.gas_handler_program_id).address

    def client_gas_config(self, gateway: Pubkey, client_program_id: Pubkey) -> Pubkey:
        return client_gas_config_descriptor(
            gateway, client_program_id, self.gas_handler_program_id
        ).address

    def gas_pool(self, gateway: Pubkey) -> Pubkey:
        return gas_pool_descriptor(gateway, self.gas_handler_program_id).address

    # --- Client programs ---

    @staticmethod
    def decoded_message(tx_id: int, client_program_id: Pubkey) -> Pubkey:
        return decoded_message_descriptor(tx_id, client_program_id).address

    @staticmethod
    def client_config(client_program_id: Pubkey) -> Pubkey:
        return client_config_descriptor(client_program_id).address
