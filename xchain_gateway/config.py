"""
Client configuration — explicit, immutable, resolved once by the caller.

The core never reads environment variables or files. A bootstrap layer
builds a GatewayConfig (directly, or from a plain mapping via
``GatewayConfig.from_dict``, which validates against the packaged
``schemas/gateway-config.v1.json``) and hands it to the orchestrator
and SDK at construction.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from importlib import resources
from typing import Any, Dict, cast

import jsonschema  # type: ignore[import-untyped]
from solders.pubkey import Pubkey

from xchain_gateway.constants import (
    DEFAULT_FEE_HANDLER_PROGRAM_ID,
    DEFAULT_GAS_HANDLER_PROGRAM_ID,
    GATEWAY_PROGRAM_ID,
)

_CONFIG_SCHEMA: Dict[str, Any] | None = None


def _load_config_schema() -> Dict[str, Any]:
    with resources.files("xchain_gateway").joinpath(
        "schemas/gateway-config.v1.json"
    ).open("r", encoding="utf-8") as f:
        return cast(Dict[str, Any], json.load(f))


def validate_config(data: Dict[str, Any]) -> None:
    """Validate a config mapping.

    Raises:
        jsonschema.ValidationError: If the mapping doesn't match the schema.
    """
    global _CONFIG_SCHEMA
    if _CONFIG_SCHEMA is None:
        _CONFIG_SCHEMA = _load_config_schema()
    jsonschema.validate(instance=data, schema=_CONFIG_SCHEMA)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: ``base_delay * 2 ** (attempt - 1)`` between attempts."""

    max_attempts: int = 3
    base_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-indexed)."""
        return self.base_delay * (2 ** (attempt - 1))


@dataclass(frozen=True)
class GatewayConfig:
    """Program ids and submission tuning.

    Attributes:
        gateway_program_id: The verifying program.
        fee_handler_program_id: Fee handler program.
        gas_handler_program_id: Gas handler program. Also the account
            whose presence is checked in a loaded lookup table.
        commitment: Commitment level confirmation waits for. Build the
            client with ``JsonRpcClient.from_config`` so reads and
            preflight use the same level.
        confirm_timeout: Seconds to poll for confirmation before the
            outcome is reported as unknown.
        poll_interval: Seconds between status polls.
        retry: Backoff policy for retryable failures.
    """

    gateway_program_id: Pubkey = GATEWAY_PROGRAM_ID
    fee_handler_program_id: Pubkey = DEFAULT_FEE_HANDLER_PROGRAM_ID
    gas_handler_program_id: Pubkey = DEFAULT_GAS_HANDLER_PROGRAM_ID
    commitment: str = "confirmed"
    confirm_timeout: float = 60.0
    poll_interval: float = 0.5
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        if self.confirm_timeout <= 0:
            raise ValueError(f"confirm_timeout must be > 0, got {self.confirm_timeout}")
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {self.poll_interval}")

    def to_dict(self) -> dict[str, object]:
        return {
            "gateway_program_id": str(self.gateway_program_id),
            "fee_handler_program_id": str(self.fee_handler_program_id),
            "gas_handler_program_id": str(self.gas_handler_program_id),
            "commitment": self.commitment,
            "confirm_timeout": self.confirm_timeout,
            "poll_interval": self.poll_interval,
            "retry": {
                "max_attempts": self.retry.max_attempts,
                "base_delay": self.retry.base_delay,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> GatewayConfig:
        """Build a config from a plain mapping; missing keys take defaults.

        Raises:
            jsonschema.ValidationError: If the mapping doesn't match the schema.
        """
        validate_config(data)
        defaults = cls()
        retry_data = data.get("retry", {})
        return cls(
            gateway_program_id=_pubkey_or(data, "gateway_program_id", defaults.gateway_program_id),
            fee_handler_program_id=_pubkey_or(
                data, "fee_handler_program_id", defaults.fee_handler_program_id
            ),
            gas_handler_program_id=_pubkey_or(
                data, "gas_handler_program_id", defaults.gas_handler_program_id
            ),
            commitment=data.get("commitment", defaults.commitment),
            confirm_timeout=float(data.get("confirm_timeout", defaults.confirm_timeout)),
            poll_interval=float(data.get("poll_interval", defaults.poll_interval)),
            retry=RetryPolicy(
                max_attempts=retry_data.get("max_attempts", defaults.retry.max_attempts),
                base_delay=float(retry_data.get("base_delay", defaults.retry.base_delay)),
            ),
        )


def _pubkey_or(data: Dict[str, Any], key: str, default: Pubkey) -> Pubkey:
    value = data.get(key)
    return default if value is None else Pubkey.from_string(value)
