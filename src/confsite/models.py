"""Domain records for site users and their browser sessions."""

from __future__ import annotations

import datetime as dt
import hashlib
from enum import Enum

import msgspec
from msgspec import structs


class Role(str, Enum):
    USER = "USER"
    STAFF = "STAFF"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


class Link(msgspec.Struct, frozen=True):
    name: str
    url: str


class User(msgspec.Struct, frozen=True, kw_only=True):
    """Persisted user identity.

    ``email`` only ever holds ciphertext. ``token`` and ``token_expiration`` are
    the volatile login credential: a new login attempt overwrites both.
    """

    login: str
    firstname: str
    lastname: str
    email: str
    email_hash: str
    role: Role = Role.USER
    company: str | None = None
    description: str | None = None
    photo_url: str | None = None
    links: tuple[Link, ...] = ()
    legacy_id: int | None = None
    token: str | None = None
    token_expiration: dt.datetime | None = None

    @property
    def is_staff(self) -> bool:
        return self.role is Role.STAFF

    def token_valid_until(self, now: dt.datetime) -> dt.timedelta | None:
        """Return the remaining lifetime of the current token, or ``None`` if lapsed."""

        if self.token is None or self.token_expiration is None:
            return None
        remaining = self.token_expiration - now
        if remaining <= dt.timedelta(0):
            return None
        return remaining


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def hash_email(email: str) -> str:
    """Stable pseudonymous identifier for an email address."""

    return hashlib.sha256(normalize_email(email).encode("utf-8")).hexdigest()


class SessionState(msgspec.Struct, frozen=True, kw_only=True):
    """Snapshot of the server-held session for one browser.

    Only a cache of the last successful sign-in: authority stays with the
    persisted :class:`User`.
    """

    email: str | None = None
    login: str | None = None
    token: str | None = None
    role: Role | None = None
    locale_redirect_done: bool = False

    @property
    def has_credentials(self) -> bool:
        return bool(self.email) and bool(self.token)

    def signed_in(self, user: User, *, email: str, token: str) -> "SessionState":
        return structs.replace(self, email=email, login=user.login, token=token, role=user.role)

    def signed_out(self) -> "SessionState":
        return SessionState(locale_redirect_done=self.locale_redirect_done)

    def with_locale_redirect(self) -> "SessionState":
        return structs.replace(self, locale_redirect_done=True)


__all__ = ["Link", "Role", "SessionState", "User", "hash_email", "normalize_email", "utcnow"]
