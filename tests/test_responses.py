from __future__ import annotations

from confsite.exceptions import HTTPError
from confsite.http import Status
from confsite.models import SessionState
from confsite.responses import (
    DEFAULT_SECURITY_HEADERS,
    JSONResponse,
    PlainTextResponse,
    RedirectResponse,
    Response,
    apply_default_security_headers,
    exception_to_response,
)
from confsite.serialization import json_decode


def test_redirect_and_cookie_helpers() -> None:
    response = (
        RedirectResponse("https://mixitconf.org/", status=Status.SEE_OTHER)
        .with_cookie("XSRF-TOKEN", "abc", max_age=60, secure=True)
        .with_cookie("SESSION", "sid", http_only=True)
    )
    assert response.status == 303
    assert response.location == "https://mixitconf.org/"
    assert response.header_values("set-cookie") == [
        "XSRF-TOKEN=abc; Path=/; Max-Age=60; SameSite=Lax; Secure",
        "SESSION=sid; Path=/; SameSite=Lax; HttpOnly",
    ]


def test_negative_max_age_is_clamped() -> None:
    response = Response().with_cookie("XSRF-TOKEN", "", max_age=-5)
    assert "Max-Age=0" in (response.header("set-cookie") or "")


def test_with_session_does_not_touch_original() -> None:
    original = PlainTextResponse("ok")
    updated = original.with_session(SessionState(locale_redirect_done=True))
    assert original.session is None
    assert updated.session == SessionState(locale_redirect_done=True)
    assert updated.body == b"ok"


def test_json_and_error_responses() -> None:
    response = JSONResponse({"view": "login"})
    assert response.header("content-type") == "application/json"
    assert json_decode(response.body) == {"view": "login"}

    error = exception_to_response(HTTPError(Status.NOT_FOUND, {"detail": "not_found"}))
    assert error.status == 404
    assert json_decode(error.body)["error"] == {"status": 404, "reason": "Not Found", "detail": {"detail": "not_found"}}


def test_security_headers_do_not_override_existing_values() -> None:
    response = Response(headers=(("x-frame-options", "SAMEORIGIN"),))
    hardened = apply_default_security_headers(response)
    assert hardened.header("x-frame-options") == "SAMEORIGIN"
    assert len(hardened.headers) == len(DEFAULT_SECURITY_HEADERS)


def test_responses_setting_cookies_are_not_cacheable() -> None:
    plain = apply_default_security_headers(PlainTextResponse("ok"))
    assert plain.header("cache-control") is None
    with_cookie = apply_default_security_headers(PlainTextResponse("ok").with_cookie("XSRF-TOKEN", "abc"))
    assert with_cookie.header("cache-control") == "no-store"
    explicit = PlainTextResponse("ok", headers=(("cache-control", "private"),)).with_cookie("SESSION", "x")
    assert apply_default_security_headers(explicit).header("cache-control") == "private"
