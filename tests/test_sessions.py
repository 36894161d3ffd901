from __future__ import annotations

import pytest

from confsite.models import SessionState
from confsite.requests import Request
from confsite.responses import PlainTextResponse, Response
from confsite.sessions import SessionStore, session_middleware
from tests.support import build_request, make_user


class _Ticker:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_store_expires_idle_sessions() -> None:
    clock = _Ticker()
    store = SessionStore(idle_timeout_seconds=10, clock=clock)
    await store.save("sid", SessionState(login="jane"))
    clock.now = 9
    assert await store.load("sid") == SessionState(login="jane")
    clock.now = 18
    assert await store.load("sid") is not None
    clock.now = 40
    assert await store.load("sid") is None
    assert len(store) == 0


@pytest.mark.asyncio
async def test_middleware_issues_cookie_only_when_state_is_saved() -> None:
    store = SessionStore()
    middleware = session_middleware(store)
    seen: list[Request] = []

    async def untouched(request: Request) -> Response:
        seen.append(request)
        return PlainTextResponse("ok")

    response = await middleware(build_request(), untouched)
    assert response.header("set-cookie") is None
    assert seen[0].session == SessionState()
    assert seen[0].session_id
    assert len(store) == 0

    async def flagging(request: Request) -> Response:
        return PlainTextResponse("ok").with_session(request.session.with_locale_redirect())

    response = await middleware(build_request(), flagging)
    cookie = response.header("set-cookie")
    assert cookie is not None and cookie.startswith("SESSION=")
    assert "HttpOnly" in cookie
    assert response.session is None
    assert len(store) == 1


@pytest.mark.asyncio
async def test_middleware_loads_existing_session() -> None:
    store = SessionStore()
    await store.save("known", SessionState(login="jane", locale_redirect_done=True))
    middleware = session_middleware(store, cookie_name="SID")
    seen: list[Request] = []

    async def handler(request: Request) -> Response:
        seen.append(request)
        return PlainTextResponse("ok").with_session(request.session.signed_out())

    response = await middleware(build_request(headers={"cookie": "SID=known"}), handler)
    assert seen[0].session_id == "known"
    assert seen[0].session.login == "jane"
    assert response.header("set-cookie") is None
    assert await store.load("known") == SessionState(locale_redirect_done=True)


@pytest.mark.asyncio
async def test_middleware_replaces_unknown_session_id() -> None:
    store = SessionStore()
    middleware = session_middleware(store)

    async def handler(request: Request) -> Response:
        return PlainTextResponse(request.session_id or "").with_session(request.session.with_locale_redirect())

    response = await middleware(build_request(headers={"cookie": "SESSION=forged"}), handler)
    issued = response.body.decode()
    assert issued != "forged"
    assert response.header("set-cookie").startswith(f"SESSION={issued};")
    assert await store.load("forged") is None


@pytest.mark.asyncio
async def test_middleware_rotates_session_id_on_sign_in() -> None:
    store = SessionStore()
    await store.save("known", SessionState(locale_redirect_done=True))
    middleware = session_middleware(store)
    user = make_user(token="Tok3n")

    async def handler(request: Request) -> Response:
        signed = request.session.signed_in(user, email="jane.doe@example.com", token="Tok3n")
        return PlainTextResponse("ok").with_session(signed)

    response = await middleware(build_request(headers={"cookie": "SESSION=known"}), handler)
    cookie = response.header("set-cookie")
    assert cookie is not None and cookie.startswith("SESSION=")
    rotated = cookie.split(";", 1)[0].split("=", 1)[1]
    assert rotated != "known"
    assert await store.load("known") is None
    loaded = await store.load(rotated)
    assert loaded is not None
    assert loaded.login == "jane.doe"
    assert loaded.locale_redirect_done
