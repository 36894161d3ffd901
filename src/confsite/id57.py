"""Base57 identifiers for session ids and login tokens."""

from __future__ import annotations

import datetime as dt
import secrets
import uuid
from typing import Callable

__all__ = [
    "ALPHABET",
    "TOKEN_BITS",
    "base57_encode",
    "decode57",
    "generate_id57",
    "generate_token",
]


# The alphabet drops characters that are easily confused when a token is copied
# by hand from an email (0/O, 1/l/I).  It is ordered by ASCII code point so that
# padded identifiers sort lexicographically in numeric order.
ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BASE = len(ALPHABET)

TOKEN_BITS = 96
_TOKEN_LENGTH = 17  # ceil(96 / log2(57))


def base57_encode(value: int, *, pad_to: int | None = None) -> str:
    """Encode ``value`` as a base57 string."""

    if value < 0:
        raise ValueError("id57 only supports unsigned integers")
    if value == 0:
        encoded = ALPHABET[0]
    else:
        digits: list[str] = []
        number = value
        while number:
            number, remainder = divmod(number, _BASE)
            digits.append(ALPHABET[remainder])
        encoded = "".join(reversed(digits))
    if pad_to is not None and pad_to > len(encoded):
        encoded = ALPHABET[0] * (pad_to - len(encoded)) + encoded
    return encoded


def decode57(value: str) -> int:
    """Decode a base57 string back into an integer."""

    number = 0
    for char in value:
        try:
            digit = ALPHABET.index(char)
        except ValueError as exc:
            raise ValueError(f"Character {char!r} is not valid for id57") from exc
        number = number * _BASE + digit
    return number


def generate_id57(
    *,
    timestamp: dt.datetime | None = None,
    random_source: Callable[[], uuid.UUID] | None = None,
) -> str:
    """Generate a lexicographically sortable identifier (timestamp + uuid4)."""

    ts = timestamp or dt.datetime.now(dt.timezone.utc)
    uuid_factory = random_source or uuid.uuid4
    prefix = base57_encode(int(ts.timestamp() * 1_000_000), pad_to=11)
    return prefix + base57_encode(uuid_factory().int, pad_to=22)


def generate_token(*, bits: int = TOKEN_BITS) -> str:
    """Return an unguessable login token carrying ``bits`` bits of entropy."""

    if bits < 80:
        raise ValueError("login tokens need at least 80 bits of entropy")
    length = _TOKEN_LENGTH if bits == TOKEN_BITS else None
    return base57_encode(secrets.randbits(bits), pad_to=length)
