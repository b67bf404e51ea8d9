"""Well-known chain ids, byte widths and program ids."""

from __future__ import annotations

from solders.pubkey import Pubkey

SOLANA_CHAIN_ID = 9999999999999999999
AVALANCHE_CHAIN_ID = 43113

CHAIN_ID_BYTES = 8
TX_ID_BYTES = 16

GATEWAY_PROGRAM_ID = Pubkey.from_string("3A9hsJkXg6aJoFxWKpo9BnYtuuYmtckWVSwd52efqFzL")
DEFAULT_FEE_HANDLER_PROGRAM_ID = Pubkey.from_string("2VSo9ub3wPfPsA1FPQbpekgUKZ8wb4diAptrijZ5eCFk")
DEFAULT_GAS_HANDLER_PROGRAM_ID = Pubkey.from_string("3kxFuY83fNGiq24zfHPHRMhPoXak3bDhHHMGWBwuwqrx")

SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
SYSVAR_INSTRUCTIONS_ID = Pubkey.from_string("Sysvar1nstructions1111111111111111111111111")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")

# Serialized transaction limit (IPv6 MTU minus headers).
PACKET_DATA_SIZE = 1232
