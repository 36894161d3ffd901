"""Server-held browser sessions."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from time import monotonic
from typing import Callable, Protocol

from msgspec import structs

from .id57 import generate_id57
from .middleware import Handler, MiddlewareCallable
from .models import SessionState
from .requests import Request
from .responses import Response

logger = logging.getLogger(__name__)


class SessionBackend(Protocol):
    async def load(self, session_id: str) -> SessionState | None:  # pragma: no cover - protocol
        ...

    async def save(self, session_id: str, state: SessionState) -> None:  # pragma: no cover - protocol
        ...

    async def delete(self, session_id: str) -> None:  # pragma: no cover - protocol
        ...


@dataclass(slots=True)
class _Entry:
    state: SessionState
    expires_at: float


class SessionStore:
    """In-memory session backend with idle expiry.

    Saves replace the whole snapshot; two requests racing on the same session
    simply resolve as last writer wins.
    """

    def __init__(
        self,
        *,
        idle_timeout_seconds: int = 1800,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.idle_timeout_seconds = idle_timeout_seconds
        self._entries: dict[str, _Entry] = {}
        self._lock = asyncio.Lock()
        self._clock = clock or monotonic

    async def load(self, session_id: str) -> SessionState | None:
        now = self._clock()
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        if entry.expires_at <= now:
            async with self._lock:
                self._entries.pop(session_id, None)
            return None
        entry.expires_at = now + self.idle_timeout_seconds
        return entry.state

    async def save(self, session_id: str, state: SessionState) -> None:
        async with self._lock:
            now = self._clock()
            self._prune_expired(now)
            self._entries[session_id] = _Entry(state=state, expires_at=now + self.idle_timeout_seconds)

    async def delete(self, session_id: str) -> None:
        async with self._lock:
            self._entries.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._entries)

    def _prune_expired(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            self._entries.pop(key, None)


def session_middleware(
    backend: SessionBackend,
    *,
    cookie_name: str = "SESSION",
    secure: bool = False,
) -> MiddlewareCallable:
    """Attach the stored session snapshot to each request and persist replacements.

    A replacement that binds a new identity is stored under a fresh id and the
    old id is dropped, so an id handed out before sign-in never carries one.
    """

    async def middleware(request: Request, handler: Handler) -> Response:
        session_id = request.cookies.get(cookie_name)
        state = await backend.load(session_id) if session_id else None
        issued = False
        if state is None:
            if session_id:
                logger.debug("Unknown or expired session, issuing a new one")
            session_id = generate_id57()
            state = SessionState()
            issued = True
        response = await handler(request.evolve(session=state, session_id=session_id))
        replacement = response.session
        if replacement is None:
            return response
        response = structs.replace(response, session=None)
        if replacement == state:
            return response
        if not issued and replacement.has_credentials and replacement.email != state.email:
            await backend.delete(session_id)
            session_id = generate_id57()
            issued = True
            logger.debug("Rotated session id after sign-in")
        await backend.save(session_id, replacement)
        if issued:
            response = response.with_cookie(cookie_name, session_id, http_only=True, secure=secure)
        return response

    return middleware


__all__ = ["SessionBackend", "SessionStore", "session_middleware"]
