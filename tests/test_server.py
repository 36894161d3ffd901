from __future__ import annotations

import pytest

from confsite.application import ConfsiteApp
from confsite.server import ServerConfig, _clear_current_app, _current_app_loader, create_server, run
from tests.support import make_config


def _granian_spy(monkeypatch):
    calls: list[dict[str, object]] = []

    class DummyGranian:
        def __init__(self, target: str, **kwargs):
            calls.append({"target": target, "kwargs": kwargs})

    monkeypatch.setattr("confsite.server.Granian", DummyGranian)
    return calls, DummyGranian


def test_create_server_configures_tls(monkeypatch, tmp_path) -> None:
    app = ConfsiteApp(make_config())
    certificate = tmp_path / "server.crt"
    key = tmp_path / "server.key"
    for path in (certificate, key):
        path.write_text("sample", encoding="utf-8")

    calls, DummyGranian = _granian_spy(monkeypatch)
    config = ServerConfig(
        host="127.0.0.1",
        port=9443,
        workers=2,
        certificate_path=str(certificate),
        private_key_path=str(key),
    )
    server = create_server(app, config)
    assert isinstance(server, DummyGranian)
    assert calls[0]["target"] == "confsite.server:_current_app_loader"
    kwargs = calls[0]["kwargs"]
    assert kwargs["address"] == "127.0.0.1"
    assert kwargs["workers"] == 2
    assert kwargs["ssl_cert"] == certificate
    assert kwargs["ssl_key"] == key
    try:
        assert _current_app_loader() is app
    finally:
        _clear_current_app()


def test_create_server_without_tls(monkeypatch) -> None:
    calls, _ = _granian_spy(monkeypatch)
    create_server(ConfsiteApp(make_config()))
    try:
        assert "ssl_cert" not in calls[0]["kwargs"]
        assert calls[0]["kwargs"]["port"] == 8080
    finally:
        _clear_current_app()


@pytest.mark.parametrize(
    ("certificate", "key"),
    [("server.crt", None), ("missing.crt", "missing.key")],
)
def test_create_server_rejects_incomplete_tls(monkeypatch, tmp_path, certificate, key) -> None:
    _granian_spy(monkeypatch)
    config = ServerConfig(
        certificate_path=str(tmp_path / certificate),
        private_key_path=str(tmp_path / key) if key else None,
    )
    with pytest.raises(RuntimeError):
        create_server(ConfsiteApp(make_config()), config)
    with pytest.raises(RuntimeError):
        _current_app_loader()


def test_run_invokes_serve(monkeypatch) -> None:
    app = ConfsiteApp(make_config())
    served: dict[str, object] = {}

    class DummyServer:
        def serve(self, target_loader=None, wrap_loader=True) -> None:
            served["loader"] = target_loader
            served["wrap"] = wrap_loader

    monkeypatch.setattr("confsite.server.create_server", lambda app, config=None: DummyServer())
    run(app)
    assert served["loader"] is _current_app_loader
    assert served["wrap"] is False
