"""
Canonical message codec.

A CrossChainMessage is serialized byte-for-byte the way the verifying
program deserializes it. The layout is fixed:

    txId            u128 little-endian   (16 bytes)
    sourceChainId   u64  little-endian   (8 bytes)
    destChainId     u64  little-endian   (8 bytes)
    sender          LP(bytes)            (<= 64 bytes)
    recipient       LP(bytes)            (<= 64 bytes)
    onChainData     LP(bytes)            (<= 1024 bytes)
    offChainData    LP(bytes)            (<= 1024 bytes)

where ``LP(x) = len(x) as u32 little-endian ∥ x``.

Invariants:
    - Size bounds are checked when the message is constructed; an
      oversized field is a FieldTooLarge error, never a truncation.
    - decode(encode(m)) == m for every valid m.
    - The decoder consumes the whole input exactly once: short input is
      TruncatedBuffer, leftover input is TrailingBytes.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from xchain_gateway.errors import FieldTooLarge, TrailingBytes, TruncatedBuffer

MAX_ADDRESS_BYTES = 64
MAX_DATA_BYTES = 1024

U64_MAX = (1 << 64) - 1
U128_MAX = (1 << 128) - 1

_LENGTH_PREFIX = struct.Struct("<I")
_CHAIN_ID = struct.Struct("<Q")

# (field name as reported in errors, attribute, bound)
_VARIABLE_FIELDS: tuple[tuple[str, str, int], ...] = (
    ("sender", "sender", MAX_ADDRESS_BYTES),
    ("recipient", "recipient", MAX_ADDRESS_BYTES),
    ("onChainData", "on_chain_data", MAX_DATA_BYTES),
    ("offChainData", "off_chain_data", MAX_DATA_BYTES),
)


# =========================================================================
# CrossChainMessage
# =========================================================================


@dataclass(frozen=True)
class CrossChainMessage:
    """The unit of cross-chain intent.

    Attributes:
        tx_id: 128-bit unsigned transaction id, unique per source chain.
        source_chain_id: 64-bit chain id of the origin chain. Non-zero.
        dest_chain_id: 64-bit chain id of the destination chain. Non-zero.
        sender: Origin address bytes (20 for EVM, 32 for ledger keys).
        recipient: Destination address bytes.
        on_chain_data: Application payload consumed on the destination.
        off_chain_data: Application payload for off-chain consumers.
    """

    tx_id: int
    source_chain_id: int
    dest_chain_id: int
    sender: bytes
    recipient: bytes
    on_chain_data: bytes = b""
    off_chain_data: bytes = b""

    def __post_init__(self) -> None:
        if not 0 <= self.tx_id <= U128_MAX:
            raise ValueError(f"tx_id must fit in 128 bits, got {self.tx_id}")
        for name in ("source_chain_id", "dest_chain_id"):
            value = getattr(self, name)
            if not 0 < value <= U64_MAX:
                raise ValueError(f"{name} must be a non-zero u64, got {value}")
        for label, attr, bound in _VARIABLE_FIELDS:
            value = getattr(self, attr)
            if not isinstance(value, bytes):
                object.__setattr__(self, attr, bytes(value))
                value = getattr(self, attr)
            if len(value) > bound:
                raise FieldTooLarge(label, len(value), bound)


# =========================================================================
# Encode / decode
# =========================================================================


def _length_prefixed(data: bytes) -> bytes:
    return _LENGTH_PREFIX.pack(len(data)) + data


def encode_message(message: CrossChainMessage) -> bytes:
    """Serialize a message into its canonical byte layout.

    Raises:
        FieldTooLarge: If a variable field exceeds its bound.
    """
    for label, attr, bound in _VARIABLE_FIELDS:
        size = len(getattr(message, attr))
        if size > bound:
            raise FieldTooLarge(label, size, bound)

    parts = [
        message.tx_id.to_bytes(16, "little"),
        _CHAIN_ID.pack(message.source_chain_id),
        _CHAIN_ID.pack(message.dest_chain_id),
        _length_prefixed(message.sender),
        _length_prefixed(message.recipient),
        _length_prefixed(message.on_chain_data),
        _length_prefixed(message.off_chain_data),
    ]
    return b"".join(parts)


class _Reader:
    """Cursor over an input buffer that refuses to read past the end."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._offset = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    def take(self, count: int, field: str) -> bytes:
        if count > self.remaining:
            raise TruncatedBuffer(field, count, self.remaining)
        chunk = self._data[self._offset:self._offset + count]
        self._offset += count
        return chunk

    def take_prefixed(self, field: str) -> bytes:
        (length,) = _LENGTH_PREFIX.unpack(self.take(4, f"{field} length prefix"))
        return self.take(length, field)


def decode_message(data: bytes) -> CrossChainMessage:
    """Parse canonical bytes back into a CrossChainMessage.

    Raises:
        TruncatedBuffer: If the input ends before a field is complete.
        TrailingBytes: If input remains after offChainData.
        FieldTooLarge: If a decoded field exceeds its bound.
        ValueError: If a decoded chain id is zero.
    """
    reader = _Reader(bytes(data))
    tx_id = int.from_bytes(reader.take(16, "txId"), "little")
    (source_chain_id,) = _CHAIN_ID.unpack(reader.take(8, "sourceChainId"))
    (dest_chain_id,) = _CHAIN_ID.unpack(reader.take(8, "destChainId"))
    fields = [reader.take_prefixed(label) for label, _, _ in _VARIABLE_FIELDS]

    if reader.remaining:
        raise TrailingBytes(reader.remaining)

    sender, recipient, on_chain_data, off_chain_data = fields
    return CrossChainMessage(
        tx_id=tx_id,
        source_chain_id=source_chain_id,
        dest_chain_id=dest_chain_id,
        sender=sender,
        recipient=recipient,
        on_chain_data=on_chain_data,
        off_chain_data=off_chain_data,
    )


def validate_message_encoding(message: CrossChainMessage) -> bool:
    """Return True if the message survives an encode/decode round trip."""
    try:
        return decode_message(encode_message(message)) == message
    except ValueError:
        return False


def validate_chain_id(chain_id: int) -> None:
    """Raise ValueError unless chain_id is a non-zero u64."""
    if not isinstance(chain_id, int) or not 0 < chain_id <= U64_MAX:
        raise ValueError(f"invalid chain ID: {chain_id!r}")


def validate_tx_id(tx_id: int) -> None:
    """Raise ValueError unless tx_id is a u128."""
    if not isinstance(tx_id, int) or not 0 <= tx_id <= U128_MAX:
        raise ValueError(f"invalid TX ID: {tx_id!r}")
