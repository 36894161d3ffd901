"""Granian integration helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

import msgspec
from granian import Granian

from .application import ConfsiteApp

logger = logging.getLogger(__name__)

_CURRENT_APP: ConfsiteApp | None = None


class ServerConfig(msgspec.Struct, frozen=True):
    host: str = "0.0.0.0"
    port: int = 8080
    interface: str = "asgi"
    workers: int = 1
    certificate_path: str | None = None
    private_key_path: str | None = None


def _register_current_app(app: ConfsiteApp) -> None:
    global _CURRENT_APP
    _CURRENT_APP = app


def _clear_current_app() -> None:
    global _CURRENT_APP
    _CURRENT_APP = None


def _current_app_loader() -> ConfsiteApp:
    """Return the application registered for the current process."""

    if _CURRENT_APP is None:
        raise RuntimeError("no confsite application registered for Granian")
    return _CURRENT_APP


def _granian_kwargs(cfg: ServerConfig) -> Mapping[str, Any]:
    kwargs: dict[str, Any] = {
        "address": cfg.host,
        "port": cfg.port,
        "interface": cfg.interface,
        "workers": cfg.workers,
    }
    if (cfg.certificate_path is None) != (cfg.private_key_path is None):
        raise RuntimeError("TLS needs both certificate_path and private_key_path")
    if cfg.certificate_path is not None and cfg.private_key_path is not None:
        certificate = Path(cfg.certificate_path)
        key = Path(cfg.private_key_path)
        missing = [str(path) for path in (certificate, key) if not path.exists()]
        if missing:
            raise RuntimeError(f"TLS assets not found: {', '.join(missing)}")
        kwargs["ssl_cert"] = certificate
        kwargs["ssl_key"] = key
    return kwargs


def create_server(app: ConfsiteApp, config: ServerConfig | None = None) -> Granian:
    cfg = config or ServerConfig()
    _register_current_app(app)
    try:
        return Granian("confsite.server:_current_app_loader", **_granian_kwargs(cfg))
    except Exception:
        _clear_current_app()
        raise


def run(app: ConfsiteApp, config: ServerConfig | None = None) -> None:
    cfg = config or ServerConfig()
    server = create_server(app, cfg)
    logger.info("Serving %s on %s:%s", app.config.base_uri, cfg.host, cfg.port)
    try:
        server.serve(target_loader=_current_app_loader, wrap_loader=False)
    finally:
        _clear_current_app()


__all__ = ["ServerConfig", "create_server", "run"]
