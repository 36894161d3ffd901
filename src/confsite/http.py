"""Status codes the site answers with, and how they are classified."""

from __future__ import annotations

import logging
from enum import IntEnum
from http import HTTPStatus as _HTTPStatus


class Status(IntEnum):
    OK = 200
    NO_CONTENT = 204
    SEE_OTHER = 303
    TEMPORARY_REDIRECT = 307
    PERMANENT_REDIRECT = 308
    BAD_REQUEST = 400
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    PAYLOAD_TOO_LARGE = 413
    INTERNAL_SERVER_ERROR = 500


REDIRECT_STATUSES = frozenset({Status.SEE_OTHER, Status.TEMPORARY_REDIRECT, Status.PERMANENT_REDIRECT})


def ensure_status(status: int | Status) -> int:
    """Return ``status`` as a plain ``int``, rejecting anything outside 100-599."""

    code = int(status)
    if not 100 <= code <= 599:
        raise ValueError(f"Invalid HTTP status code: {status}")
    return code


def reason_phrase(status: int | Status) -> str:
    try:
        return _HTTPStatus(int(status)).phrase
    except ValueError:
        return "Unknown Status"


def is_redirect(status: int | Status) -> bool:
    """Redirects the gate and the login flow emit; 301/302 are never produced."""

    return ensure_status(status) in REDIRECT_STATUSES


def is_error(status: int | Status) -> bool:
    return ensure_status(status) >= 400


def severity(status: int | Status) -> int:
    """Logging level for a completed request: errors warn, everything else is info."""

    return logging.WARNING if is_error(status) else logging.INFO


__all__ = [
    "REDIRECT_STATUSES",
    "Status",
    "ensure_status",
    "is_error",
    "is_redirect",
    "reason_phrase",
    "severity",
]
