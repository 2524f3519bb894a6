from __future__ import annotations

import json
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any

import pytest

from bloop_client import BloopClient


class IngestHandler(BaseHTTPRequestHandler):
    """Simple HTTP handler that records received payloads."""

    server: IngestServer  # type: ignore[assignment]

    def do_POST(self) -> None:
        length = int(self.headers.get("Content-Length", 0))
        body = self.rfile.read(length)
        with self.server.lock:
            self.server.payloads.append(
                {
                    "path": self.path,
                    "headers": {k.lower(): v for k, v in self.headers.items()},
                    "body": body,
                    "json": json.loads(body),
                }
            )

        status = self.server.response_status
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        self.wfile.write(b'{"ok":true}')

    def log_message(self, *args: Any) -> None:
        pass  # Suppress request logging


class IngestServer(HTTPServer):
    payloads: list[dict[str, Any]]
    response_status: int
    lock: threading.Lock

    def of_path(self, path: str) -> list[dict[str, Any]]:
        with self.lock:
            return [p for p in self.payloads if p["path"] == path]


@pytest.fixture
def ingest_server():
    """Start a local HTTP server in a thread, yield (server, url)."""
    server = IngestServer(("127.0.0.1", 0), IngestHandler)
    server.payloads = []
    server.response_status = 200
    server.lock = threading.Lock()
    port = server.server_address[1]
    url = f"http://127.0.0.1:{port}"

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    yield server, url

    server.shutdown()
    server.server_close()
    thread.join(timeout=2)


@pytest.fixture
def make_client(ingest_server):
    """Factory that creates a client pre-configured for the test server."""
    server, url = ingest_server
    clients: list[BloopClient] = []

    def _make(**overrides: Any) -> BloopClient:
        opts = {
            "endpoint": url,
            "project_key": "test-key",
            "debug": True,
            **overrides,
        }
        c = BloopClient(opts)
        clients.append(c)
        return c

    yield _make, server, url

    for c in clients:
        c._wait_for_dispatch(timeout=5)
        c._executor.shutdown(wait=True)
