"""Hex codec used to render binary payloads in diagnostic logs.

Encoding produces uppercase ``0-9A-F`` text with no separators. Decoding is
case-insensitive and returns ``None`` instead of raising on malformed input.
Both directions are vectorised lookups against small numpy tables.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

BASE_LENGTH = 128
LOOKUP_LENGTH = 16
XOR_LENGTH = 8


def _build_alphabet() -> NDArray[np.uint8]:
    return np.frombuffer(b"0123456789ABCDEF", dtype=np.uint8).copy()


def _build_number_table() -> NDArray[np.int8]:
    table = np.full(BASE_LENGTH, -1, dtype=np.int8)
    table[ord("0") : ord("9") + 1] = np.arange(10)
    table[ord("A") : ord("F") + 1] = np.arange(10, LOOKUP_LENGTH)
    table[ord("a") : ord("f") + 1] = np.arange(10, LOOKUP_LENGTH)
    return table


_HEX_ALPHABET = _build_alphabet()
_HEX_NUMBER_TABLE = _build_number_table()


def encode(data: bytes | bytearray | memoryview | None) -> str | None:
    """Encode bytes as an uppercase hex string.

    Returns ``None`` for ``None`` input, ``""`` for empty input.
    """
    if data is None:
        return None
    raw = np.frombuffer(bytes(data), dtype=np.uint8)
    out = np.empty(raw.size * 2, dtype=np.uint8)
    out[0::2] = _HEX_ALPHABET[raw >> 4]
    out[1::2] = _HEX_ALPHABET[raw & 0x0F]
    return out.tobytes().decode("ascii")


def decode(encoded: str | None) -> bytes | None:
    """Decode a hex string into bytes.

    Returns ``None`` when the input is ``None``, has odd length, or contains
    any character that is not a hex digit.
    """
    if encoded is None:
        return None
    if len(encoded) % 2 != 0:
        return None
    if not encoded:
        return b""

    codes = np.fromiter((ord(c) for c in encoded), dtype=np.int64, count=len(encoded))
    if codes.max() >= BASE_LENGTH:
        return None
    nibbles = _HEX_NUMBER_TABLE[codes]
    if np.any(nibbles < 0):
        return None

    high = nibbles[0::2].astype(np.uint8)
    low = nibbles[1::2].astype(np.uint8)
    return ((high << 4) | low).tobytes()


def to_byte_array(value: int) -> bytes:
    """Big-endian 4-byte representation of the low 32 bits of ``value``."""
    return np.array(value & 0xFFFFFFFF, dtype=">u4").tobytes()


def xor(b1: bytes | bytearray, b2: bytes | bytearray) -> bytes:
    """Byte-wise exclusive-or of the first 8 bytes of ``b1`` and ``b2``."""
    if len(b1) < XOR_LENGTH or len(b2) < XOR_LENGTH:
        msg = f"xor needs at least {XOR_LENGTH} bytes, got {len(b1)} and {len(b2)}"
        raise ValueError(msg)
    a = np.frombuffer(bytes(b1[:XOR_LENGTH]), dtype=np.uint8)
    b = np.frombuffer(bytes(b2[:XOR_LENGTH]), dtype=np.uint8)
    return np.bitwise_xor(a, b).tobytes()
