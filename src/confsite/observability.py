"""Structured access logging."""

from __future__ import annotations

import json
import logging
import secrets
import time
from typing import Any, Mapping

from .http import Status, severity
from .middleware import Handler, MiddlewareCallable
from .requests import Request
from .responses import Response

ACCESS_LOGGER = "confsite.access"


def _log(logger: logging.Logger, event: str, fields: Mapping[str, Any], *, level: int = logging.INFO) -> None:
    payload: dict[str, Any] = {"event": event}
    payload.update({key: value for key, value in fields.items() if value is not None})
    logger.log(level, json.dumps(payload, separators=(",", ":")))


def access_log_middleware(*, logger: logging.Logger | None = None) -> MiddlewareCallable:
    """Emit one JSON line per request once the response is known.

    Request bodies, cookies and query strings are never logged.
    """

    target = logger or logging.getLogger(ACCESS_LOGGER)

    async def middleware(request: Request, handler: Handler) -> Response:
        started = time.perf_counter()
        fields: dict[str, Any] = {
            "request_id": secrets.token_hex(8),
            "method": request.method,
            "path": request.path,
        }
        try:
            response = await handler(request)
        except Exception as exc:
            fields["duration_ms"] = round((time.perf_counter() - started) * 1000, 3)
            fields["status"] = int(getattr(exc, "status", Status.INTERNAL_SERVER_ERROR))
            fields["error"] = type(exc).__name__
            _log(target, "request.error", fields, level=logging.ERROR)
            raise
        fields["status"] = response.status
        fields["duration_ms"] = round((time.perf_counter() - started) * 1000, 3)
        _log(target, "request.complete", fields, level=severity(response.status))
        return response

    return middleware


__all__ = ["ACCESS_LOGGER", "access_log_middleware"]
