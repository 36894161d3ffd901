"""Testing helpers."""

from __future__ import annotations

from dataclasses import dataclass
from http.cookies import CookieError, SimpleCookie
from typing import Any, Mapping
from urllib.parse import urlencode, urlsplit

from .application import ConfsiteApp
from .exceptions import NotificationError
from .responses import Response
from .serialization import json_encode


class TestClient:
    """Async test client that executes requests in-process.

    Cookies set by responses are kept in a jar and sent back on later
    requests, so a client behaves like one browser.
    """

    __test__ = False

    def __init__(self, app: ConfsiteApp, *, host: str | None = None) -> None:
        self.app = app
        self.host = host or urlsplit(app.config.base_uri).netloc or "localhost"
        self.cookies: dict[str, str] = {}

    async def __aenter__(self) -> "TestClient":
        await self.app.startup()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.app.shutdown()

    async def request(
        self,
        method: str,
        path: str,
        *,
        host: str | None = None,
        json: Any | None = None,
        form: Mapping[str, str] | None = None,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        payload = b""
        request_headers = {key.lower(): value for key, value in (headers or {}).items()}
        if json is not None:
            payload = json_encode(json)
            request_headers.setdefault("content-type", "application/json")
        elif form is not None:
            payload = urlencode(form).encode()
            request_headers.setdefault("content-type", "application/x-www-form-urlencoded")
        if self.cookies and "cookie" not in request_headers:
            request_headers["cookie"] = "; ".join(f"{name}={value}" for name, value in self.cookies.items())
        response = await self.app.dispatch(
            method,
            path,
            host=host or self.host,
            query_string=urlencode(query or {}, doseq=True),
            headers=request_headers,
            body=payload,
        )
        self._store_cookies(response)
        return response

    async def get(
        self,
        path: str,
        *,
        host: str | None = None,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        return await self.request("GET", path, host=host, query=query, headers=headers)

    async def post(
        self,
        path: str,
        *,
        host: str | None = None,
        json: Any | None = None,
        form: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        return await self.request("POST", path, host=host, json=json, form=form, headers=headers)

    def _store_cookies(self, response: Response) -> None:
        for header in response.header_values("set-cookie"):
            jar = SimpleCookie()
            try:
                jar.load(header)
            except CookieError:
                continue
            for name, morsel in jar.items():
                if morsel["max-age"] == "0":
                    self.cookies.pop(name, None)
                else:
                    self.cookies[name] = morsel.value


@dataclass(slots=True, frozen=True)
class SentNotification:
    template: str
    subject: str
    recipient: str
    locale: str
    context: Mapping[str, str]


class RecordingNotifier:
    """Notifier that keeps every message instead of delivering it."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[SentNotification] = []

    async def send(
        self,
        template: str,
        subject: str,
        recipient: str,
        locale: str,
        context: Mapping[str, str] | None = None,
    ) -> None:
        if self.fail:
            raise NotificationError(subject, recipient)
        self.sent.append(SentNotification(template, subject, recipient, locale, dict(context or {})))

    @property
    def last(self) -> SentNotification:
        if not self.sent:
            raise LookupError("no notification sent")
        return self.sent[-1]


__all__ = ["RecordingNotifier", "SentNotification", "TestClient"]
