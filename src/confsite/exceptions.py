"""Site exception types."""

from __future__ import annotations

from typing import Any

from .http import Status, ensure_status, reason_phrase
from .serialization import json_encode


class ConfsiteError(Exception):
    """Base error type."""


class HTTPError(ConfsiteError):
    """Structured HTTP error that is msgspec serializable."""

    def __init__(self, status: int | Status, detail: Any) -> None:
        status_code = ensure_status(status)
        super().__init__(status_code, detail)
        self.status = status_code
        self.detail = detail
        self.reason = reason_phrase(status_code)

    def to_response_body(self) -> bytes:
        return json_encode({"error": {"status": self.status, "reason": self.reason, "detail": self.detail}})


class DecodeError(ConfsiteError, ValueError):
    """Raised when ciphertext or a URL token cannot be decoded."""


class NotificationError(ConfsiteError):
    """Raised when an out-of-band notification could not be dispatched."""

    def __init__(self, subject: str, recipient: str) -> None:
        super().__init__(f"Not possible to send email [{subject}] to {recipient}")
        self.subject = subject
        self.recipient = recipient


class RepositoryError(ConfsiteError):
    """Raised by a persistence backend when a document cannot be stored."""


class DuplicateRecordError(RepositoryError):
    """A new document clashes with a stored one on a unique ``field`` (``login`` or ``email``)."""

    def __init__(self, field: str, value: str) -> None:
        super().__init__(f"A user with this {field} already exists: {value}")
        self.field = field
        self.value = value


class LoginError(ConfsiteError):
    """A login flow failure identified by a message catalog key."""

    def __init__(self, key: str) -> None:
        super().__init__(key)
        self.key = key


__all__ = [
    "ConfsiteError",
    "DecodeError",
    "DuplicateRecordError",
    "HTTPError",
    "LoginError",
    "NotificationError",
    "RepositoryError",
]
