# ============================================================================
# Capledger v1.0.0
# BCS Writer - Binary Canonical Serialization for Ledger Payloads
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Byte-exact encoding of transaction data before signing
#
# Encoding Rules:
#   - Integers little-endian, fixed width
#   - Sequence lengths and enum variant tags as ULEB128
#   - Addresses / object ids as 32 raw bytes
#
# ============================================================================

import re
from typing import Iterable, Callable, TypeVar

import base58

from capledger.errors import InvalidAddressError

T = TypeVar("T")

ADDRESS_LENGTH = 32
DIGEST_LENGTH = 32

_HEX_PATTERN = re.compile(r"^[0-9a-f]+$")


def normalize_address(address: str) -> str:
    """
    Normalize an address or object id to 0x-prefixed, 64-hex lowercase form.

    Raises:
        InvalidAddressError: If the value is not hex or longer than 32 bytes
    """
    if not isinstance(address, str):
        raise InvalidAddressError(f"Address must be str, got {type(address).__name__}")
    text = address.strip().lower()
    if text.startswith("0x"):
        text = text[2:]
    if not text or len(text) > ADDRESS_LENGTH * 2:
        raise InvalidAddressError(f"Address '{address}' has invalid length")
    if _HEX_PATTERN.match(text) is None:
        raise InvalidAddressError(f"Address '{address}' is not hexadecimal")
    return "0x" + text.rjust(ADDRESS_LENGTH * 2, "0")


class BcsWriter:
    """
    Append-only BCS byte writer.

    Example Usage:
        writer = BcsWriter()
        writer.write_uleb128(1).write_u64(1000).write_address("0x2")
        payload = writer.to_bytes()
    """

    def __init__(self):
        self._buffer = bytearray()

    def write_u8(self, value: int) -> "BcsWriter":
        return self._write_int(value, 1)

    def write_u16(self, value: int) -> "BcsWriter":
        return self._write_int(value, 2)

    def write_u64(self, value: int) -> "BcsWriter":
        return self._write_int(value, 8)

    def write_bool(self, value: bool) -> "BcsWriter":
        self._buffer.append(1 if value else 0)
        return self

    def write_uleb128(self, value: int) -> "BcsWriter":
        if value < 0:
            raise ValueError(f"ULEB128 value must be non-negative, got {value}")
        while True:
            byte = value & 0x7F
            value >>= 7
            if value:
                self._buffer.append(byte | 0x80)
            else:
                self._buffer.append(byte)
                return self

    def write_fixed_bytes(self, data: bytes) -> "BcsWriter":
        self._buffer.extend(data)
        return self

    def write_bytes(self, data: bytes) -> "BcsWriter":
        """Length-prefixed byte vector (vector<u8>)."""
        self.write_uleb128(len(data))
        self._buffer.extend(data)
        return self

    def write_str(self, value: str) -> "BcsWriter":
        return self.write_bytes(value.encode("utf-8"))

    def write_address(self, address: str) -> "BcsWriter":
        normalized = normalize_address(address)
        self._buffer.extend(bytes.fromhex(normalized[2:]))
        return self

    def write_digest(self, digest: str) -> "BcsWriter":
        """Base58 object / transaction digest, encoded as a 32-byte vector."""
        raw = base58.b58decode(digest)
        if len(raw) != DIGEST_LENGTH:
            raise ValueError(f"Digest '{digest}' decodes to {len(raw)} bytes, expected 32")
        return self.write_bytes(raw)

    def write_sequence(
        self,
        items: Iterable[T],
        write_item: Callable[["BcsWriter", T], object]
    ) -> "BcsWriter":
        items = list(items)
        self.write_uleb128(len(items))
        for item in items:
            write_item(self, item)
        return self

    def to_bytes(self) -> bytes:
        return bytes(self._buffer)

    def _write_int(self, value: int, width: int) -> "BcsWriter":
        if value < 0 or value >= 1 << (8 * width):
            raise ValueError(f"Value {value} does not fit in u{8 * width}")
        self._buffer.extend(value.to_bytes(width, "little"))
        return self


def encode_u64(value: int) -> bytes:
    return BcsWriter().write_u64(value).to_bytes()


def encode_address(address: str) -> bytes:
    return BcsWriter().write_address(address).to_bytes()


def encode_byte_vector(data: bytes) -> bytes:
    return BcsWriter().write_bytes(data).to_bytes()


def decode_u64(data: bytes) -> int:
    if len(data) != 8:
        raise ValueError(f"u64 needs 8 bytes, got {len(data)}")
    return int.from_bytes(data, "little")


def decode_address(data: bytes) -> str:
    if len(data) != ADDRESS_LENGTH:
        raise ValueError(f"address needs 32 bytes, got {len(data)}")
    return "0x" + data.hex()


def decode_byte_vector(data: bytes) -> bytes:
    length = 0
    shift = 0
    offset = 0
    while True:
        if offset >= len(data):
            raise ValueError("Truncated ULEB128 length")
        byte = data[offset]
        offset += 1
        length |= (byte & 0x7F) << shift
        if not byte & 0x80:
            break
        shift += 7
    payload = data[offset:]
    if len(payload) != length:
        raise ValueError(f"vector<u8> declares {length} bytes, found {len(payload)}")
    return payload
