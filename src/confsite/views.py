"""View rendering collaborator."""

from __future__ import annotations

from typing import Any, Mapping, Protocol

from .responses import JSONResponse, Response


class ViewRenderer(Protocol):
    def render(self, template: str, context: Mapping[str, Any] | None = None) -> Response:  # pragma: no cover
        ...


class JSONViewRenderer:
    """Render views as JSON documents naming the template and its model.

    Stands in for the page templates, which live outside this package.
    """

    def render(self, template: str, context: Mapping[str, Any] | None = None) -> Response:
        return JSONResponse({"view": template, "model": dict(context or {})})


__all__ = ["JSONViewRenderer", "ViewRenderer"]
