"""Response primitives."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable

import msgspec
from msgspec import structs

from .exceptions import HTTPError
from .http import Status, is_redirect
from .models import SessionState
from .serialization import json_encode

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from .requests import Request


Handler = Callable[["Request"], Awaitable["Response"]]

DEFAULT_SECURITY_HEADERS: tuple[tuple[str, str], ...] = (
    ("x-content-type-options", "nosniff"),
    ("referrer-policy", "strict-origin-when-cross-origin"),
    ("x-frame-options", "DENY"),
    ("cross-origin-opener-policy", "same-origin"),
)

Headers = tuple[tuple[str, str], ...]


class Response(msgspec.Struct, frozen=True):
    """Immutable response payload.

    ``session`` is the replacement session snapshot to persist once the
    response leaves the pipeline; ``None`` keeps the stored session unchanged.
    """

    status: int = int(Status.OK)
    headers: Headers = ()
    body: bytes = b""
    session: SessionState | None = None

    def with_headers(self, headers: Iterable[tuple[str, str]]) -> "Response":
        """Return a new response with ``headers`` appended."""

        return structs.replace(self, headers=self.headers + tuple(headers))

    def with_session(self, session: SessionState) -> "Response":
        return structs.replace(self, session=session)

    def with_cookie(
        self,
        name: str,
        value: str,
        *,
        max_age: int | None = None,
        path: str = "/",
        http_only: bool = False,
        secure: bool = False,
        same_site: str = "Lax",
    ) -> "Response":
        """Return a new response carrying a ``set-cookie`` header."""

        parts = [f"{name}={value}", f"Path={path}"]
        if max_age is not None:
            parts.append(f"Max-Age={max(0, int(max_age))}")
        if same_site:
            parts.append(f"SameSite={same_site}")
        if http_only:
            parts.append("HttpOnly")
        if secure:
            parts.append("Secure")
        return self.with_headers((("set-cookie", "; ".join(parts)),))

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    def header_values(self, name: str) -> list[str]:
        lowered = name.lower()
        return [value for key, value in self.headers if key.lower() == lowered]

    @property
    def location(self) -> str | None:
        return self.header("location")


def apply_default_security_headers(
    response: Response,
    *,
    headers: Iterable[tuple[str, str]] | None = None,
) -> Response:
    """Add the baseline headers ``response`` does not already carry.

    Responses that set a cookie are additionally marked ``no-store`` so that
    session and XSRF cookies are never replayed from a shared cache.
    """

    present = {name.lower() for name, _ in response.headers}
    wanted = tuple(headers if headers is not None else DEFAULT_SECURITY_HEADERS)
    if "set-cookie" in present:
        wanted += (("cache-control", "no-store"),)
    additions = tuple((name, value) for name, value in wanted if name.lower() not in present)
    return response.with_headers(additions) if additions else response


async def security_headers_middleware(request: "Request", handler: Handler) -> Response:
    return apply_default_security_headers(await handler(request))


def _content(
    body: bytes,
    content_type: str,
    status: int,
    headers: Iterable[tuple[str, str]] | None,
) -> Response:
    return Response(status=status, headers=(("content-type", content_type), *(headers or ())), body=body)


def PlainTextResponse(
    text: str,
    *,
    status: int = int(Status.OK),
    headers: Iterable[tuple[str, str]] | None = None,
) -> Response:
    return _content(text.encode("utf-8"), "text/plain; charset=utf-8", status, headers)


def JSONResponse(
    data: Any,
    *,
    status: int = int(Status.OK),
    headers: Iterable[tuple[str, str]] | None = None,
) -> Response:
    """JSON body encoded with :func:`json_encode`, so user credentials never leave the server."""

    return _content(json_encode(data), "application/json", status, headers)


def RedirectResponse(location: str, *, status: int = int(Status.TEMPORARY_REDIRECT)) -> Response:
    """Create an empty-bodied redirect to ``location``."""

    if not is_redirect(status):
        raise ValueError(f"{status} is not a redirect status")
    return Response(status=int(status), headers=(("location", location),))


def exception_to_response(exc: HTTPError) -> Response:
    return _content(exc.to_response_body(), "application/json", exc.status, None)


__all__ = [
    "DEFAULT_SECURITY_HEADERS",
    "JSONResponse",
    "PlainTextResponse",
    "RedirectResponse",
    "Response",
    "apply_default_security_headers",
    "exception_to_response",
    "security_headers_middleware",
]
