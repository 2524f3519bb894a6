"""Tests for WSGI middleware (Flask, Bottle)."""

from __future__ import annotations

from io import BytesIO
from typing import Any

import pytest

from bloop_client import hash_user_id
from bloop_client.middleware.wsgi import BloopWSGI

# ── Helpers ──────────────────────────────────────────────────────────


def simple_wsgi_app(environ: dict, start_response: Any) -> list[bytes]:
    """Minimal WSGI app that returns 200 with a body."""
    start_response("200 OK", [("Content-Type", "text/plain")])
    return [b"Hello, World!"]


def failing_wsgi_app(environ: dict, start_response: Any) -> list[bytes]:
    """WSGI app that answers 503 without raising."""
    start_response("503 Service Unavailable", [("Content-Type", "text/plain")])
    return [b"down"]


def error_wsgi_app(environ: dict, start_response: Any) -> list[bytes]:
    """WSGI app that raises an exception."""
    raise RuntimeError("app error")


def streaming_error_app(environ: dict, start_response: Any) -> Any:
    start_response("200 OK", [("Content-Type", "text/plain")])
    yield b"partial"
    raise ValueError("stream broke")


def make_environ(
    method: str = "GET",
    path: str = "/api/test",
    headers: dict[str, str] | None = None,
) -> dict:
    env: dict[str, Any] = {
        "REQUEST_METHOD": method,
        "PATH_INFO": path,
        "SERVER_NAME": "localhost",
        "SERVER_PORT": "8000",
        "wsgi.input": BytesIO(b""),
    }
    if headers:
        for key, value in headers.items():
            env_key = "HTTP_" + key.upper().replace("-", "_")
            env[env_key] = value
    return env


def consume_response(app: Any, environ: dict) -> tuple[str, list[bytes]]:
    """Run WSGI app and consume all response data."""
    status_holder: list[str] = []

    def start_response(status: str, headers: list, exc_info: Any = None) -> Any:
        status_holder.append(status)
        return lambda s: None

    response = app(environ, start_response)
    try:
        body_parts = list(response)
    finally:
        if hasattr(response, "close"):
            response.close()
    return status_holder[0] if status_holder else "", body_parts


# ── Tests ────────────────────────────────────────────────────────────


class TestWsgiMiddleware:
    def test_success_reports_nothing(self, make_client):
        _make, server, _ = make_client
        client = _make()
        app = BloopWSGI(simple_wsgi_app, client=client)

        status, body = consume_response(app, make_environ())
        client.flush()

        assert status == "200 OK"
        assert body == [b"Hello, World!"]
        assert server.payloads == []

    def test_exception_captured_and_reraised(self, make_client):
        _make, server, _ = make_client
        client = _make()
        app = BloopWSGI(error_wsgi_app, client=client)

        with pytest.raises(RuntimeError, match="app error"):
            consume_response(app, make_environ(method="POST", path="/orders"))
        client.flush()

        event = server.payloads[0]["json"]["events"][0]
        assert event["error_type"] == "RuntimeError"
        assert event["message"] == "app error"
        assert event["route_or_procedure"] == "/orders"
        assert event["http_status"] == 500
        assert "Traceback" in event["stack"]

    def test_server_error_status_captured(self, make_client):
        _make, server, _ = make_client
        client = _make()
        app = BloopWSGI(failing_wsgi_app, client=client)

        consume_response(app, make_environ(path="/health"))
        client.flush()

        event = server.payloads[0]["json"]["events"][0]
        assert event["error_type"] == "HTTPError"
        assert event["message"] == "HTTP 503"
        assert event["http_status"] == 503
        assert event["route_or_procedure"] == "/health"

    def test_streaming_exception_captured(self, make_client):
        _make, server, _ = make_client
        client = _make()
        app = BloopWSGI(streaming_error_app, client=client)

        with pytest.raises(ValueError, match="stream broke"):
            consume_response(app, make_environ())
        client.flush()

        events = server.payloads[0]["json"]["events"]
        assert len(events) == 1
        assert events[0]["error_type"] == "ValueError"

    def test_request_id_and_user_hash(self, make_client):
        _make, server, _ = make_client
        client = _make()
        app = BloopWSGI(error_wsgi_app, client=client)

        environ = make_environ(headers={"x-request-id": "req-42", "x-user-id": "user-7"})
        with pytest.raises(RuntimeError):
            consume_response(app, environ)
        client.flush()

        event = server.payloads[0]["json"]["events"][0]
        assert event["request_id"] == "req-42"
        assert event["user_id_hash"] == hash_user_id("user-7")

    def test_custom_identify_user(self, make_client):
        _make, server, _ = make_client
        client = _make(identify_user=lambda headers: headers.get("x-tenant-id"))
        app = BloopWSGI(error_wsgi_app, client=client)

        environ = make_environ(headers={"x-tenant-id": "tenant-42", "x-user-id": "ignored"})
        with pytest.raises(RuntimeError):
            consume_response(app, environ)
        client.flush()

        assert server.payloads[0]["json"]["events"][0]["user_id_hash"] == "tenant-42"

    def test_nil_client_passthrough(self):
        app = BloopWSGI(simple_wsgi_app, client=None)
        status, body = consume_response(app, make_environ())
        assert status == "200 OK"
        assert body == [b"Hello, World!"]

    def test_nil_client_error_propagation(self):
        app = BloopWSGI(error_wsgi_app, client=None)
        with pytest.raises(RuntimeError, match="app error"):
            consume_response(app, make_environ())
