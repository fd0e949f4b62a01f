"""Hashing and Base58 text encoding for addresses and keys."""

from __future__ import annotations

import hashlib

# Bitcoin alphabet; no checksum is appended.
B58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_B58_INDEX = {char: i for i, char in enumerate(B58_ALPHABET)}


def sha256_hex(data: bytes) -> str:
    """Lowercase hex SHA-256 of *data*."""
    return hashlib.sha256(data).hexdigest()


def base58_encode(payload: bytes) -> str:
    """Base58 text for *payload*; each leading zero byte becomes a ``1``."""
    zeros = len(payload) - len(payload.lstrip(b"\x00"))
    n = int.from_bytes(payload, "big")
    digits: list[str] = []
    while n:
        n, rem = divmod(n, 58)
        digits.append(B58_ALPHABET[rem])
    return B58_ALPHABET[0] * zeros + "".join(reversed(digits))


def base58_decode(text: str) -> bytes:
    """Inverse of ``base58_encode``.

    Raises:
        ValueError: If *text* contains a character outside the alphabet.
    """
    n = 0
    for char in text:
        try:
            n = n * 58 + _B58_INDEX[char]
        except KeyError:
            msg = f"Invalid base58 character: {char!r}"
            raise ValueError(msg) from None
    zeros = len(text) - len(text.lstrip(B58_ALPHABET[0]))
    body = n.to_bytes((n.bit_length() + 7) // 8, "big")
    return b"\x00" * zeros + body
