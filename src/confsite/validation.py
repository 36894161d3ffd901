"""Email syntax validation."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final, Protocol, cast

import rure

if TYPE_CHECKING:

    class RureRegex(Protocol):
        def is_match(self, value: str) -> bool:  # pragma: no cover - typing helper
            ...


else:  # pragma: no cover - runtime alias derived from compiled pattern
    RureRegex = type(rure.compile("demo"))


_EMAIL_PATTERN: Final[RureRegex] = cast(
    "RureRegex",
    rure.compile(
        r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+"
        r"@[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
        r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)+$"
    ),
)

_MAX_EMAIL_LENGTH = 254


class EmailValidator:
    """Pure syntactic check for email addresses."""

    def is_valid(self, email: str | None) -> bool:
        if not email:
            return False
        candidate = email.strip()
        if not candidate or len(candidate) > _MAX_EMAIL_LENGTH:
            return False
        local, _, _ = candidate.rpartition("@")
        if len(local) > 64 or local.startswith(".") or local.endswith(".") or ".." in local:
            return False
        return _EMAIL_PATTERN.is_match(candidate)


__all__ = ["EmailValidator"]
