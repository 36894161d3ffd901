"""Application configuration objects."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from msgspec import Struct, convert, json

from .execution import ExecutionConfig

_DEFAULT_CRAWLERS: tuple[str, ...] = (
    "Google",
    "Bingbot",
    "Qwant",
    "Slurp",
    "DuckDuckBot",
    "Baiduspider",
)


class MailConfig(Struct, frozen=True):
    """SMTP settings for outbound notifications."""

    host: str = "localhost"
    port: int = 25
    username: str | None = None
    password: str | None = None
    use_tls: bool = False
    sender: str = "no-reply@localhost"
    timeout: float = 10.0


class AppConfig(Struct, frozen=True):
    """Typed, immutable configuration shared by the gate and the login handlers."""

    base_uri: str = "http://localhost:8080"
    secret: str = ""
    legacy_domains: tuple[str, ...] = ()
    default_language: str = "fr"
    alternate_language: str = "en"
    secured_paths: tuple[str, ...] = ("/me", "/favorites")
    admin_paths: tuple[str, ...] = ("/admin", "/api/admin")
    public_paths: tuple[str, ...] = ("/login", "/logout", "/signup", "/signin")
    crawler_agents: tuple[str, ...] = _DEFAULT_CRAWLERS
    token_ttl_hours: int = 48
    session_cookie: str = "SESSION"
    xsrf_cookie: str = "XSRF-TOKEN"
    cookie_secure: bool = False
    default_avatar: str = "/images/default-avatar.png"
    max_request_body_bytes: int | None = 65_536
    mail: MailConfig = MailConfig()
    execution: ExecutionConfig = ExecutionConfig()

    def url(self, path: str = "/") -> str:
        """Return ``path`` joined to the canonical base URI."""

        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base_uri.rstrip('/')}{path}"

    @property
    def language_prefix(self) -> str:
        return f"/{self.alternate_language}/"


def _read_env_blob(name: str, env: Mapping[str, str]) -> str | None:
    file_key = f"{name}_FILE"
    path = env.get(file_key)
    if path:
        try:
            return Path(path).read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise RuntimeError(f"Configuration file at '{path}' not found") from exc
    value = env.get(name)
    if value:
        return value
    return None


def load_config_from_env(*, env: Mapping[str, str] | None = None) -> AppConfig:
    """Decode :class:`AppConfig` from ``CONFSITE_CONFIG`` and ``CONFSITE_SECRET``."""

    source = env if env is not None else os.environ
    raw = _read_env_blob("CONFSITE_CONFIG", source)
    payload: dict = {}
    if raw is not None:
        try:
            payload = json.decode(raw)
        except Exception as exc:
            raise RuntimeError("Failed to decode CONFSITE_CONFIG as JSON") from exc
        if not isinstance(payload, dict):
            raise RuntimeError("CONFSITE_CONFIG must be a JSON object")
    secret = _read_env_blob("CONFSITE_SECRET", source)
    if secret is not None:
        payload["secret"] = secret.strip()
    try:
        return convert(payload, type=AppConfig)
    except Exception as exc:
        raise RuntimeError("Invalid site configuration in environment") from exc


__all__ = ["AppConfig", "MailConfig", "load_config_from_env"]
