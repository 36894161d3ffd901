"""Per-request gate: canonical domain, locale bootstrap, language paths and access control.

The gate runs a fixed sequence of steps. Each step either settles the request
with an outcome (:class:`Redirect` or :class:`Forward`) or hands an updated
:class:`GateContext` to the next step, so every branch can be exercised on its
own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Sequence

from .config import AppConfig
from .http import Status
from .identity import IdentityResolver
from .middleware import Handler
from .models import SessionState, User
from .requests import Request
from .responses import RedirectResponse, Response

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Redirect:
    location: str
    status: int
    session: SessionState | None = None


@dataclass(slots=True, frozen=True)
class Forward:
    request: Request


GateOutcome = Redirect | Forward


@dataclass(slots=True, frozen=True)
class GateContext:
    """What the gate knows about a request between steps."""

    request: Request
    path: str
    language: str
    user: User | None = None


GateStep = Callable[[GateContext], Awaitable["GateOutcome | GateContext"]]


def negotiate_language(header: str | None) -> str | None:
    """Return the primary subtag of the preferred language in an Accept-Language header."""

    if not header:
        return None
    ranked: list[tuple[float, int, str]] = []
    for position, item in enumerate(header.split(",")):
        tag, _, params = item.strip().partition(";")
        tag = tag.strip()
        if not tag or tag == "*":
            continue
        quality = 1.0
        for param in params.split(";"):
            name, _, value = param.strip().partition("=")
            if name.strip().lower() == "q":
                try:
                    quality = float(value)
                except ValueError:
                    quality = 0.0
        if quality <= 0:
            continue
        ranked.append((-quality, position, tag.split("-", 1)[0].lower()))
    if not ranked:
        return None
    ranked.sort()
    return ranked[0][2]


def _starts_with_any(path: str, prefixes: Sequence[str]) -> bool:
    """Segment-aware prefix match: ``/me`` covers ``/me/talks`` but not ``/media``."""

    for prefix in prefixes:
        base = prefix.rstrip("/")
        if path == base or path.startswith(base + "/"):
            return True
    return False


class RequestGate:
    """Middleware deciding, per request, between a redirect and a rewritten forward."""

    def __init__(self, config: AppConfig, resolver: IdentityResolver) -> None:
        self.config = config
        self.resolver = resolver
        self._steps: tuple[GateStep, ...] = (
            self.canonicalize_domain,
            self.bootstrap_locale,
            self.strip_language,
            self.authorize,
        )

    async def __call__(self, request: Request, handler: Handler) -> Response:
        outcome = await self.evaluate(request)
        if isinstance(outcome, Forward):
            return await handler(outcome.request)
        response = RedirectResponse(outcome.location, status=outcome.status)
        if outcome.session is not None:
            response = response.with_session(outcome.session)
        return response

    async def evaluate(self, request: Request) -> GateOutcome:
        context = GateContext(request=request, path=request.path, language=self.config.default_language)
        for step in self._steps:
            result = await step(context)
            if isinstance(result, (Redirect, Forward)):
                return result
            context = result
        raise RuntimeError("request gate finished without an outcome")

    # ------------------------------------------------------------------ steps
    async def canonicalize_domain(self, context: GateContext) -> GateOutcome | GateContext:
        hostname = context.request.host.split(":", 1)[0].lower()
        if hostname and any(hostname.endswith(domain) for domain in self.config.legacy_domains):
            logger.debug("Redirecting legacy host %s", hostname)
            return Redirect(self.config.url(context.request.path), int(Status.PERMANENT_REDIRECT))
        return context

    async def bootstrap_locale(self, context: GateContext) -> GateOutcome | GateContext:
        request = context.request
        if request.path != "/":
            return context
        language = negotiate_language(request.header("accept-language")) or self.config.default_language
        if language == self.config.default_language or self.is_crawler(request):
            return context
        session = request.session
        if session.locale_redirect_done:
            rewritten = request.with_header("accept-language", self.config.default_language)
            return replace(context, request=rewritten)
        return Redirect(
            self.config.url(self.config.language_prefix),
            int(Status.TEMPORARY_REDIRECT),
            session=session.with_locale_redirect(),
        )

    async def strip_language(self, context: GateContext) -> GateOutcome | GateContext:
        prefix = self.config.language_prefix
        if context.path.startswith(prefix):
            return replace(context, path=context.path[len(prefix) - 1 :], language=self.config.alternate_language)
        return replace(context, language=self.config.default_language)

    async def authorize(self, context: GateContext) -> GateOutcome | GateContext:
        path = context.path
        user = await self.resolver.resolve(context.request.session)
        if not _starts_with_any(path, self.config.public_paths):
            if _starts_with_any(path, self.config.admin_paths):
                if user is None or not user.is_staff:
                    return Redirect(self.config.url("/"), int(Status.TEMPORARY_REDIRECT))
            elif _starts_with_any(path, self.config.secured_paths) and user is None:
                return Redirect(self.config.url("/login"), int(Status.TEMPORARY_REDIRECT))
        headers = dict(context.request.headers)
        headers["content-language"] = context.language
        return Forward(context.request.evolve(path=path, headers=headers, user=user))

    # ------------------------------------------------------------------ helpers
    def is_crawler(self, request: Request) -> bool:
        agent = request.header("user-agent") or ""
        return any(token in agent for token in self.config.crawler_agents)


__all__ = ["Forward", "GateContext", "GateOutcome", "Redirect", "RequestGate", "negotiate_language"]
