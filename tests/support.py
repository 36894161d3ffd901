"""Shared builders for confsite tests."""

from __future__ import annotations

import datetime as dt
from typing import Any

from confsite.cipher import CredentialCipher
from confsite.config import AppConfig
from confsite.models import Role, SessionState, User, hash_email
from confsite.requests import Request
from confsite.serialization import json_decode

SECRET = "a-test-secret-long-enough-for-sha512"
BASE_URI = "https://mixitconf.org"
EPOCH = dt.datetime(2024, 4, 18, 9, 30, tzinfo=dt.timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: dt.datetime = EPOCH) -> None:
        self.now = now

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + dt.timedelta(**delta)


def make_config(**overrides: Any) -> AppConfig:
    values: dict[str, Any] = {
        "base_uri": BASE_URI,
        "secret": SECRET,
        "legacy_domains": ("mix-it.fr",),
    }
    values.update(overrides)
    return AppConfig(**values)


def make_cipher() -> CredentialCipher:
    return CredentialCipher.from_secret(SECRET)


def make_user(
    email: str = "jane.doe@example.com",
    *,
    login: str = "jane.doe",
    role: Role = Role.USER,
    token: str | None = None,
    token_expiration: dt.datetime | None = None,
) -> User:
    return User(
        login=login,
        firstname="Jane",
        lastname="Doe",
        email=make_cipher().encrypt(email),
        email_hash=hash_email(email),
        role=role,
        token=token,
        token_expiration=token_expiration,
    )


def signed_session(user: User, email: str = "jane.doe@example.com") -> SessionState:
    assert user.token is not None
    return SessionState().signed_in(user, email=email, token=user.token)


def build_request(method: str = "GET", path: str = "/", **kwargs: Any) -> Request:
    kwargs.setdefault("host", "mixitconf.org")
    return Request(method=method, path=path, **kwargs)


def view_of(response) -> tuple[str, dict[str, Any]]:
    payload = json_decode(response.body)
    return payload["view"], payload["model"]
