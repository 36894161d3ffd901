from __future__ import annotations

from typing import Any, Protocol, cast

import msgspec
from msgspec import structs

from .models import User


class _JSONModule(Protocol):
    def encode(self, obj: Any) -> bytes: ...

    def decode(self, data: bytes) -> Any: ...


_json = cast(_JSONModule, getattr(msgspec, "json"))

# Login credentials stay server side even when a user record reaches a view model.
CREDENTIAL_FIELDS = frozenset({"token", "token_expiration", "email_hash"})


def _without_credentials(value: Any) -> Any:
    if isinstance(value, User):
        return {
            key: _without_credentials(item)
            for key, item in structs.asdict(value).items()
            if key not in CREDENTIAL_FIELDS
        }
    if isinstance(value, dict):
        return {key: _without_credentials(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_without_credentials(item) for item in value]
    return value


def json_encode(value: Any) -> bytes:
    """Serialize ``value`` to JSON bytes, dropping credential fields of any :class:`User`."""

    return _json.encode(_without_credentials(value))


def json_decode(data: bytes | str) -> Any:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return _json.decode(data)


__all__ = ["CREDENTIAL_FIELDS", "json_decode", "json_encode"]
