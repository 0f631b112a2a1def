"""Helper functions exposed to custom tracers: hex, word, address and contract helpers."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from Crypto.Hash import keccak

__all__ = [
    "TracerError",
    "PrecompileList",
    "hex_decode",
    "bytes_from_value",
    "bytes_to_address",
    "bytes_to_word",
    "to_hex",
    "to_word",
    "to_address",
    "to_contract",
    "to_contract2",
    "slice_bytes",
]

_HEX_DIGITS = re.compile(r"[0-9a-fA-F]*")


class TracerError(ValueError):
    """Raised when a tracer helper receives a value it cannot handle."""


def _keccak(data: bytes) -> bytes:
    return keccak.new(digest_bits=256, data=data).digest()


def hex_decode(text: str) -> bytes:
    """Decode hex leniently: an optional 0x prefix and an odd number of digits are allowed."""
    digits = text[2:] if text.startswith("0x") else text
    if len(digits) % 2 == 1:
        digits = "0" + digits
    if not _HEX_DIGITS.fullmatch(digits):
        bad = next(char for char in digits if char not in "0123456789abcdefABCDEF")
        raise TracerError(f'invalid hex string: "{digits}": invalid character {bad!r}')
    return bytes.fromhex(digits)


def _to_u8(number: Any) -> int:
    """Convert a number to a byte the way a saturating float cast does."""
    try:
        value = float(number)
    except (TypeError, ValueError):
        value = math.nan
    if math.isnan(value):
        return 0
    if value <= 0:
        return 0
    if value >= 255:
        return 255
    return int(value)


def bytes_from_value(value: Any) -> bytes:
    """Convert bytes, a hex string or a sequence of numbers into bytes."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return hex_decode(value)
    if isinstance(value, (list, tuple)):
        return bytes(_to_u8(item) for item in value)
    raise TracerError(f"invalid buffer type: {type(value).__name__}")


def _fixed(data: bytes, size: int) -> bytes:
    data = bytes(data)
    if len(data) > size:
        data = data[len(data) - size:]
    return data.rjust(size, b"\0")


def bytes_to_address(data: bytes) -> bytes:
    """Left-pad to 20 bytes, keeping the rightmost bytes of longer input."""
    return _fixed(data, 20)


def bytes_to_word(data: bytes) -> bytes:
    """Left-pad to 32 bytes, keeping the rightmost bytes of longer input."""
    return _fixed(data, 32)


def to_hex(value: Any) -> str:
    """Hex-encode a buffer value with a 0x prefix."""
    return "0x" + bytes_from_value(value).hex()


def to_word(value: Any) -> bytes:
    return bytes_to_word(bytes_from_value(value))


def to_address(value: Any) -> bytes:
    return bytes_to_address(bytes_from_value(value))


def _rlp_bytes(data: bytes) -> bytes:
    if len(data) == 1 and data[0] < 0x80:
        return data
    if len(data) < 56:
        return bytes([0x80 + len(data)]) + data
    length = len(data).to_bytes((len(data).bit_length() + 7) // 8, "big")
    return bytes([0xB7 + len(length)]) + length + data


def _rlp_list(items: Iterable[bytes]) -> bytes:
    payload = b"".join(items)
    if len(payload) < 56:
        return bytes([0xC0 + len(payload)]) + payload
    length = len(payload).to_bytes((len(payload).bit_length() + 7) // 8, "big")
    return bytes([0xF7 + len(length)]) + length + payload


def _to_nonce(nonce: Any) -> int:
    try:
        number = float(nonce)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or number <= 0:
        return 0
    return min(int(number), 2**64 - 1)


def to_contract(sender: Any, nonce: Any = 0) -> bytes:
    """Address of a contract created with CREATE by `sender` at `nonce`."""
    address = bytes_to_address(bytes_from_value(sender))
    nonce_value = _to_nonce(nonce)
    nonce_bytes = nonce_value.to_bytes((nonce_value.bit_length() + 7) // 8, "big")
    encoded = _rlp_list([_rlp_bytes(address), _rlp_bytes(nonce_bytes)])
    return _keccak(encoded)[12:]


def to_contract2(sender: Any, salt: Any, initcode: Any) -> bytes:
    """Address of a contract created with CREATE2."""
    if isinstance(salt, (bytes, bytearray, memoryview)):
        salt_word = bytes_to_word(bytes(salt))
    else:
        salt_word = bytes_to_word(hex_decode(str(salt)))
    address = bytes_to_address(bytes_from_value(sender))
    code = bytes_from_value(initcode)
    return _keccak(b"\xff" + address + salt_word + _keccak(code))[12:]


def _to_index(number: Any) -> int:
    try:
        value = float(number)
    except (TypeError, ValueError) as err:
        raise TracerError(f"invalid index: {number!r}") from err
    if math.isnan(value) or value <= 0:
        return 0
    return int(value)


def slice_bytes(value: Any, start: Any, end: Any) -> bytes:
    """Return bytes `start` to `end` of a buffer value, raising when out of bounds."""
    data = bytes_from_value(value)
    begin = _to_index(start)
    stop = _to_index(end)
    if begin > stop or stop > len(data):
        raise TracerError(
            "Tracer accessed out of bound memory: "
            f"available {len(data)}, start {begin}, end {stop}"
        )
    return data[begin:stop]


@dataclass(frozen=True)
class PrecompileList:
    """The set of precompile addresses, queried by `is_precompiled`."""

    addresses: frozenset[bytes] = field(default_factory=frozenset)

    def is_precompiled(self, value: Any) -> bool:
        return bytes_to_address(bytes_from_value(value)) in self.addresses