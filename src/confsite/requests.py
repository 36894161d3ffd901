"""Request primitives."""

from __future__ import annotations

import asyncio
from http.cookies import CookieError, SimpleCookie
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, MutableMapping
from urllib.parse import parse_qsl

import msgspec

from .exceptions import HTTPError
from .http import Status
from .models import SessionState
from .serialization import json_decode

if TYPE_CHECKING:
    from .models import User

BodyLoader = Callable[[], Awaitable[bytes | bytearray | memoryview | None]]

_MAX_QUERY_PARAMS = 1024
_UNSET: Any = msgspec.UNSET


class _BodySource:
    """Body bytes shared by a request and every copy derived from it."""

    __slots__ = ("_body", "_loader", "_lock")

    def __init__(self, body: bytes | None, loader: BodyLoader | None) -> None:
        self._body = body
        self._loader = loader
        self._lock = asyncio.Lock()

    async def read(self) -> bytes:
        if self._body is None:
            async with self._lock:
                if self._body is None:
                    raw = await self._loader() if self._loader is not None else None
                    self._body = b"" if raw is None else bytes(raw)
                    self._loader = None
        return self._body


class Request:
    """Immutable view of an incoming request.

    Stages that need a different path, headers, session or user build a copy
    with :meth:`evolve`; nothing mutates a request in place.
    """

    __slots__ = (
        "_body",
        "_cookies",
        "_query_params",
        "_raw_query",
        "headers",
        "host",
        "method",
        "path",
        "path_params",
        "session",
        "session_id",
        "user",
    )

    def __init__(
        self,
        *,
        method: str,
        path: str,
        host: str = "",
        headers: Mapping[str, str] | None = None,
        path_params: Mapping[str, str] | None = None,
        query_string: str | None = None,
        body: bytes | None = None,
        body_loader: BodyLoader | None = None,
        session: SessionState | None = None,
        session_id: str | None = None,
        user: "User | None" = None,
    ) -> None:
        if body is not None and body_loader is not None:
            raise ValueError("Request body and body_loader are mutually exclusive")
        self.method = method.upper()
        self.path = path
        self.headers = {k.lower(): v for k, v in (headers or {}).items()}
        self.host = host or self.headers.get("host", "")
        self.path_params = dict(path_params or {})
        self.session = session or SessionState()
        self.session_id = session_id
        self.user = user
        self._raw_query = query_string or ""
        self._body = _BodySource(body, body_loader)
        self._query_params: MutableMapping[str, list[str]] | None = None
        self._cookies: dict[str, str] | None = None

    def evolve(
        self,
        *,
        path: str | None = None,
        headers: Mapping[str, str] | None = None,
        path_params: Mapping[str, str] | None = None,
        session: SessionState | None = None,
        session_id: str | None = None,
        user: "User | None" = _UNSET,
    ) -> "Request":
        """Return a copy of this request with the given fields replaced."""

        clone = Request(
            method=self.method,
            path=self.path if path is None else path,
            host=self.host,
            headers=self.headers if headers is None else headers,
            path_params=self.path_params if path_params is None else path_params,
            query_string=self._raw_query,
            session=self.session if session is None else session,
            session_id=self.session_id if session_id is None else session_id,
            user=self.user if user is _UNSET else user,
        )
        clone._body = self._body
        return clone

    def with_header(self, name: str, value: str) -> "Request":
        headers = dict(self.headers)
        headers[name.lower()] = value
        return self.evolve(headers=headers)

    @staticmethod
    def _parse_pairs(raw: str) -> MutableMapping[str, list[str]]:
        parsed: MutableMapping[str, list[str]] = {}
        try:
            pairs = parse_qsl(raw, keep_blank_values=True, max_num_fields=_MAX_QUERY_PARAMS)
        except ValueError as exc:
            raise HTTPError(Status.BAD_REQUEST, {"detail": "too_many_parameters"}) from exc
        for key, value in pairs:
            parsed.setdefault(key, []).append(value)
        return parsed

    @property
    def query_params(self) -> MutableMapping[str, list[str]]:
        if self._query_params is None:
            self._query_params = self._parse_pairs(self._raw_query)
        return self._query_params

    @property
    def cookies(self) -> Mapping[str, str]:
        if self._cookies is None:
            jar: dict[str, str] = {}
            raw = self.headers.get("cookie")
            if raw:
                parsed = SimpleCookie()
                try:
                    parsed.load(raw)
                except CookieError:
                    parsed = SimpleCookie()
                jar = {name: morsel.value for name, morsel in parsed.items()}
            self._cookies = jar
        return self._cookies

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)

    async def body(self) -> bytes:
        return await self._body.read()

    async def text(self) -> str:
        return (await self.body()).decode()

    async def json(self) -> Any:
        body = await self.body()
        if not body:
            return None
        return json_decode(body)

    async def form(self) -> dict[str, str]:
        """Return submitted fields as a single-value map (first value wins).

        URL-encoded bodies are the default; JSON objects are accepted too.
        """

        content_type = (self.header("content-type") or "").split(";", 1)[0].strip().lower()
        if content_type == "application/json":
            try:
                payload = await self.json()
            except msgspec.DecodeError as exc:
                raise HTTPError(Status.BAD_REQUEST, {"detail": "invalid_json"}) from exc
            if not isinstance(payload, dict):
                return {}
            return {str(key): str(value) for key, value in payload.items() if value is not None}
        parsed = self._parse_pairs((await self.body()).decode("utf-8", errors="replace"))
        return {key: values[0] for key, values in parsed.items() if values}
