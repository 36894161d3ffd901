"""Application core and the authentication subsystem wiring."""

from __future__ import annotations

import datetime as dt
import inspect
import logging
from typing import Any, Awaitable, Callable, Iterable, Mapping

from .cipher import CredentialCipher
from .config import AppConfig
from .exceptions import HTTPError
from .execution import TaskExecutor
from .gate import RequestGate
from .handlers import AuthenticationHandlers, attach_authentication
from .http import Status
from .identity import IdentityResolver
from .middleware import MiddlewareCallable, apply_middleware
from .notifications import EmailTemplates, MessageCatalog, Notifier, SmtpNotifier
from .observability import access_log_middleware
from .repository import InMemoryUserRepository, UserRepository
from .requests import Request
from .responses import (
    JSONResponse,
    PlainTextResponse,
    Response,
    apply_default_security_headers,
    exception_to_response,
    security_headers_middleware,
)
from .routing import MethodNotAllowed, Route, Router
from .sessions import SessionBackend, SessionStore, session_middleware
from .tokens import TokenIssuer
from .validation import EmailValidator
from .views import JSONViewRenderer, ViewRenderer

logger = logging.getLogger(__name__)

Endpoint = Callable[..., Awaitable[Any] | Any]


class ConfsiteApp:
    """Central application object: router, middleware pipeline and ASGI adapter.

    Routing happens after the middleware pipeline so that stages such as the
    request gate can rewrite the path before a route is chosen.
    """

    def __init__(self, config: AppConfig | None = None, *, executor: TaskExecutor | None = None) -> None:
        self.config = config or AppConfig()
        self.router = Router()
        self.executor = executor or TaskExecutor(self.config.execution)
        self._middlewares: list[MiddlewareCallable] = [security_headers_middleware]
        self._startup_hooks: list[Callable[[], Awaitable[None] | None]] = []
        self._shutdown_hooks: list[Callable[[], Awaitable[None] | None]] = []

    # ------------------------------------------------------------------ routing
    def route(
        self,
        path: str,
        *,
        methods: Iterable[str],
        name: str | None = None,
    ) -> Callable[[Endpoint], Endpoint]:
        def decorator(func: Endpoint) -> Endpoint:
            self.router.add_route(path, methods=tuple(methods), endpoint=func, name=name)
            return func

        return decorator

    def get(self, path: str, *, name: str | None = None) -> Callable[[Endpoint], Endpoint]:
        return self.route(path, methods=("GET",), name=name)

    def post(self, path: str, *, name: str | None = None) -> Callable[[Endpoint], Endpoint]:
        return self.route(path, methods=("POST",), name=name)

    def include(self, *handlers: Endpoint) -> None:
        self.router.include(handlers)

    def url_path_for(self, name: str, /, **params: Any) -> str:
        return self.router.path_for(name, **params)

    # ------------------------------------------------------------------ middleware
    def add_middleware(self, middleware: MiddlewareCallable) -> None:
        """Append ``middleware``; earlier registrations wrap later ones."""

        if middleware in self._middlewares:
            return
        self._middlewares.append(middleware)

    # ------------------------------------------------------------------ lifecycle
    def on_startup(self, func: Callable[[], Awaitable[None] | None]) -> Callable[[], Awaitable[None] | None]:
        self._startup_hooks.append(func)
        return func

    def on_shutdown(self, func: Callable[[], Awaitable[None] | None]) -> Callable[[], Awaitable[None] | None]:
        self._shutdown_hooks.append(func)
        return func

    async def startup(self) -> None:
        for hook in self._startup_hooks:
            result = hook()
            if inspect.isawaitable(result):
                await result

    async def shutdown(self) -> None:
        for hook in self._shutdown_hooks:
            result = hook()
            if inspect.isawaitable(result):
                await result
        await self.executor.shutdown()

    # ------------------------------------------------------------------ request handling
    async def dispatch(
        self,
        method: str,
        path: str,
        *,
        host: str,
        query_string: str | None = None,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
        body_loader: Callable[[], Awaitable[bytes]] | None = None,
    ) -> Response:
        limit = self.config.max_request_body_bytes
        if limit is not None and body is not None and len(body) > limit:
            return exception_to_response(HTTPError(Status.PAYLOAD_TOO_LARGE, {"detail": "request_body_too_large"}))
        request = Request(
            method=method,
            path=path,
            host=host,
            headers=headers or {},
            query_string=query_string or "",
            body=body,
            body_loader=None if body is not None else body_loader,
        )
        handler = apply_middleware(self._middlewares, self._endpoint_handler)
        try:
            return await handler(request)
        except HTTPError as exc:
            return exception_to_response(exc)
        except Exception:
            logger.exception("Unhandled error while serving %s %s", method, path)
            error = HTTPError(Status.INTERNAL_SERVER_ERROR, {"detail": "internal_error"})
            return apply_default_security_headers(exception_to_response(error))

    async def _endpoint_handler(self, request: Request) -> Response:
        try:
            try:
                match = self.router.find(request.method, request.path)
            except MethodNotAllowed as exc:
                raise HTTPError(Status.METHOD_NOT_ALLOWED, {"allowed": list(exc.allowed)}) from exc
            except LookupError as exc:
                raise HTTPError(Status.NOT_FOUND, {"detail": "not_found"}) from exc
            return await self._execute_route(match.route, request.evolve(path_params=match.params))
        except HTTPError as exc:
            return exception_to_response(exc)

    async def _execute_route(self, route: Route, request: Request) -> Response:
        result = route.call(request)
        if inspect.isawaitable(result):
            result = await result
        return _coerce_response(result)

    # ------------------------------------------------------------------ interface adapters
    async def __call__(
        self,
        scope: Mapping[str, Any],
        receive: Callable[[], Awaitable[Mapping[str, Any]]],
        send: Callable[[Mapping[str, Any]], Awaitable[None]],
    ) -> None:
        scope_type = scope.get("type")
        if scope_type == "http":
            await self._handle_http(scope, receive, send)
            return
        if scope_type == "lifespan":
            await self._handle_lifespan(receive, send)
            return
        raise RuntimeError("ConfsiteApp only supports HTTP scopes")

    async def _handle_http(
        self,
        scope: Mapping[str, Any],
        receive: Callable[[], Awaitable[Mapping[str, Any]]],
        send: Callable[[Mapping[str, Any]], Awaitable[None]],
    ) -> None:
        headers = {key.decode("latin-1").lower(): value.decode("latin-1") for key, value in scope.get("headers", [])}
        host = headers.get("host")
        if host is None:
            server = scope.get("server")
            host = f"{server[0]}:{server[1]}" if server else ""
        limit = self.config.max_request_body_bytes
        declared = headers.get("content-length")
        if limit is not None and declared and declared.isdigit() and int(declared) > limit:
            response = exception_to_response(HTTPError(Status.PAYLOAD_TOO_LARGE, {"detail": "request_body_too_large"}))
            await _send_response(response, send)
            return

        async def load_body() -> bytes:
            buffer = bytearray()
            while True:
                message = await receive()
                message_type = message.get("type")
                if message_type == "http.disconnect":
                    break
                if message_type != "http.request":
                    continue
                chunk = message.get("body", b"")
                if chunk:
                    buffer.extend(chunk)
                    if limit is not None and len(buffer) > limit:
                        raise HTTPError(Status.PAYLOAD_TOO_LARGE, {"detail": "request_body_too_large"})
                if not message.get("more_body", False):
                    break
            return bytes(buffer)

        response = await self.dispatch(
            scope["method"],
            scope["path"],
            host=host,
            query_string=(scope.get("query_string") or b"").decode("latin-1"),
            headers=headers,
            body_loader=load_body,
        )
        await _send_response(response, send)

    async def _handle_lifespan(
        self,
        receive: Callable[[], Awaitable[Mapping[str, Any]]],
        send: Callable[[Mapping[str, Any]], Awaitable[None]],
    ) -> None:
        while True:
            message = await receive()
            if message.get("type") == "lifespan.startup":
                await self.startup()
                await send({"type": "lifespan.startup.complete"})
            elif message.get("type") == "lifespan.shutdown":
                await self.shutdown()
                await send({"type": "lifespan.shutdown.complete"})
                return


async def _send_response(response: Response, send: Callable[[Mapping[str, Any]], Awaitable[None]]) -> None:
    await send(
        {
            "type": "http.response.start",
            "status": response.status,
            "headers": [(k.encode("latin-1"), v.encode("latin-1")) for k, v in response.headers],
        }
    )
    await send({"type": "http.response.body", "body": response.body})


def _coerce_response(result: Any) -> Response:
    if isinstance(result, Response):
        return result
    if result is None:
        return Response(status=int(Status.NO_CONTENT), body=b"")
    if isinstance(result, str):
        return PlainTextResponse(result)
    return JSONResponse(result)


def create_app(
    config: AppConfig,
    *,
    repository: UserRepository | None = None,
    notifier: Notifier | None = None,
    renderer: ViewRenderer | None = None,
    session_store: SessionBackend | None = None,
    catalog: MessageCatalog | None = None,
    clock: Callable[[], dt.datetime] | None = None,
    token_factory: Callable[[], str] | None = None,
) -> ConfsiteApp:
    """Assemble the conference site: session handling, request gate and login flow.

    Raises :class:`ValueError` when ``config.secret`` is empty.
    """

    if not config.secret:
        raise ValueError("AppConfig.secret must be set to encrypt credentials")
    app = ConfsiteApp(config)
    repository = repository or InMemoryUserRepository()
    renderer = renderer or JSONViewRenderer()
    catalog = catalog or MessageCatalog(default_locale=config.default_language)
    templates = EmailTemplates(default_locale=config.default_language)
    notifier = notifier or SmtpNotifier(config.mail, executor=app.executor, templates=templates)
    cipher = CredentialCipher.from_secret(config.secret)
    resolver = IdentityResolver(repository, clock=clock)
    issuer = TokenIssuer(
        config,
        repository=repository,
        notifier=notifier,
        cipher=cipher,
        catalog=catalog,
        clock=clock,
        token_factory=token_factory,
    )
    handlers = AuthenticationHandlers(
        config,
        repository=repository,
        issuer=issuer,
        cipher=cipher,
        renderer=renderer,
        validator=EmailValidator(),
        clock=clock,
    )

    app.add_middleware(access_log_middleware())
    app.add_middleware(
        session_middleware(
            session_store or SessionStore(),
            cookie_name=config.session_cookie,
            secure=config.cookie_secure,
        )
    )
    app.add_middleware(RequestGate(config, resolver))
    attach_authentication(app, handlers)
    logger.info("Authentication routes attached for %s", config.base_uri)

    @app.get("/", name="home")
    async def home(request: Request) -> Response:
        return renderer.render("home", _page_model(request))

    @app.get("/me", name="user")
    async def me(request: Request) -> Response:
        return renderer.render("user", _page_model(request))

    @app.get("/admin", name="admin")
    async def admin(request: Request) -> Response:
        return renderer.render("admin", _page_model(request))

    return app


def _page_model(request: Request) -> dict[str, Any]:
    user = request.user
    return {
        "language": request.header("content-language"),
        "login": user.login if user is not None else None,
        "staff": bool(user is not None and user.is_staff),
    }


__all__ = ["ConfsiteApp", "create_app"]
