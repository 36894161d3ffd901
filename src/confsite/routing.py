"""Path routing for the site's handlers."""

from __future__ import annotations

import inspect
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping, Sequence, get_type_hints
from urllib.parse import quote

import rure
from rure.regex import RegexObject

from .requests import Request

Endpoint = Callable[..., Awaitable[Any] | Any]

_PLACEHOLDER = re.compile(r"{([a-zA-Z_][a-zA-Z0-9_]*)(?::([a-zA-Z_][a-zA-Z0-9_]*))?}")
_CONVERTERS = {None: "[^/]+", "path": ".*"}


class MethodNotAllowed(LookupError):
    """The path exists but not for the requested method."""

    def __init__(self, method: str, path: str, allowed: Sequence[str]) -> None:
        super().__init__(f"{method} not allowed for {path}")
        self.allowed = tuple(allowed)


class Source(Enum):
    """Where an endpoint argument comes from."""

    REQUEST = "request"
    PATH = "path"
    DEFAULT = "default"


@dataclass(slots=True)
class RouteSpec:
    path: str
    methods: tuple[str, ...]
    endpoint: Endpoint
    name: str | None = None


@dataclass(slots=True)
class Route:
    spec: RouteSpec
    pattern: RegexObject
    param_names: tuple[str, ...]
    arguments: tuple[tuple[str, Source], ...]

    def call(self, request: Request) -> Awaitable[Any] | Any:
        kwargs: dict[str, Any] = {}
        for name, source in self.arguments:
            if source is Source.REQUEST:
                kwargs[name] = request
            elif source is Source.PATH:
                kwargs[name] = request.path_params[name]
        return self.spec.endpoint(**kwargs)


@dataclass(slots=True)
class RouteMatch:
    route: Route
    params: Mapping[str, str]


class Router:
    """Ordered route table; the first route matching both method and path wins."""

    def __init__(self) -> None:
        self._routes: list[Route] = []
        self._by_name: dict[str, Route] = {}

    def add_route(
        self,
        path: str,
        *,
        methods: Sequence[str],
        endpoint: Endpoint,
        name: str | None = None,
    ) -> Route:
        pattern, param_names = _compile_path(path)
        spec = RouteSpec(
            path=path,
            methods=tuple(dict.fromkeys(method.upper() for method in methods)),
            endpoint=endpoint,
            name=name,
        )
        route = Route(
            spec=spec,
            pattern=pattern,
            param_names=param_names,
            arguments=_plan_arguments(endpoint, param_names),
        )
        self._routes.append(route)
        if name is not None:
            self._by_name[name] = route
        return route

    def find(self, method: str, path: str) -> RouteMatch:
        """Resolve ``method`` and ``path`` to a route.

        Raises :class:`MethodNotAllowed` when the path is known under other
        methods only, and :class:`LookupError` when no route knows the path.
        """

        method = method.upper()
        allowed: dict[str, None] = {}
        for route in self._routes:
            captures = route.pattern.match(path)
            if captures is None:
                continue
            if method in route.spec.methods:
                params = {name: captures.group(name) for name in route.param_names}
                return RouteMatch(route=route, params={k: v for k, v in params.items() if v is not None})
            allowed.update(dict.fromkeys(route.spec.methods))
        if allowed:
            raise MethodNotAllowed(method, path, tuple(allowed))
        raise LookupError(f"No route matches {method} {path}")

    def path_for(self, name: str, /, **params: Any) -> str:
        """Build the path of the route registered as ``name``, quoting each parameter."""

        route = self._by_name.get(name)
        if route is None:
            raise LookupError(f"Route {name!r} not found")
        missing = set(route.param_names) - params.keys()
        if missing:
            raise ValueError(f"Route {name!r} needs {', '.join(sorted(missing))}")

        def fill(match: re.Match[str]) -> str:
            safe = "/" if match.group(2) == "path" else ""
            return quote(str(params[match.group(1)]), safe=safe)

        return _PLACEHOLDER.sub(fill, route.spec.path)

    def include(self, handlers: Iterable[Endpoint]) -> None:
        for handler in handlers:
            spec: RouteSpec | None = getattr(handler, "__confsite_route__", None)
            if spec is None:
                raise ValueError(f"Handler {handler!r} missing @route decorator metadata")
            self.add_route(spec.path, methods=spec.methods, endpoint=handler, name=spec.name)


def route(path: str, *, methods: Sequence[str], name: str | None = None) -> Callable[[Endpoint], Endpoint]:
    def decorator(func: Endpoint) -> Endpoint:
        setattr(func, "__confsite_route__", RouteSpec(path=path, methods=tuple(methods), endpoint=func, name=name))
        return func

    return decorator


def get(path: str, *, name: str | None = None) -> Callable[[Endpoint], Endpoint]:
    return route(path, methods=["GET"], name=name)


def post(path: str, *, name: str | None = None) -> Callable[[Endpoint], Endpoint]:
    return route(path, methods=["POST"], name=name)


def _compile_path(path: str) -> tuple[RegexObject, tuple[str, ...]]:
    param_names: list[str] = []

    def placeholder(match: re.Match[str]) -> str:
        name, converter = match.group(1), match.group(2)
        if converter not in _CONVERTERS:
            raise ValueError(f"Unsupported path converter: {converter}")
        param_names.append(name)
        return f"(?P<{name}>{_CONVERTERS[converter]})"

    return rure.compile("^" + _PLACEHOLDER.sub(placeholder, path) + "$"), tuple(param_names)


def _plan_arguments(endpoint: Endpoint, param_names: tuple[str, ...]) -> tuple[tuple[str, Source], ...]:
    """Decide once, at registration, how each endpoint argument is filled."""

    hints = get_type_hints(endpoint)
    plan: list[tuple[str, Source]] = []
    for name, parameter in inspect.signature(endpoint).parameters.items():
        if hints.get(name, parameter.annotation) is Request:
            plan.append((name, Source.REQUEST))
        elif name in param_names:
            plan.append((name, Source.PATH))
        elif parameter.default is not inspect.Parameter.empty:
            plan.append((name, Source.DEFAULT))
        else:
            raise ValueError(f"Cannot resolve parameter {name!r} of {endpoint!r}")
    return tuple(plan)


__all__ = ["MethodNotAllowed", "Route", "RouteMatch", "RouteSpec", "Router", "Source", "get", "post", "route"]
