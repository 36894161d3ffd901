"""Request pipeline composition."""

from __future__ import annotations

from typing import Awaitable, Callable, Iterable

from .requests import Request
from .responses import Response

Handler = Callable[[Request], Awaitable[Response]]
MiddlewareCallable = Callable[[Request, Handler], Awaitable[Response]]


def apply_middleware(middlewares: Iterable[MiddlewareCallable], endpoint: Handler) -> Handler:
    """Wrap ``endpoint`` so the first middleware sees the request first.

    Any stage may answer on its own, such as the gate's redirects, or pass a
    rewritten request to the next stage.
    """

    handler = endpoint
    for middleware in reversed(tuple(middlewares)):
        handler = _chain(middleware, handler)
    return handler


def _chain(middleware: MiddlewareCallable, downstream: Handler) -> Handler:
    async def handler(request: Request) -> Response:
        return await middleware(request, downstream)

    return handler


__all__ = ["Handler", "MiddlewareCallable", "apply_middleware"]
