"""ASGI middleware — works with FastAPI, Starlette, Litestar, and any ASGI app."""

from __future__ import annotations

from typing import Any

from ..client import BloopClient
from ._request import report_exception, report_status, request_fields


class BloopASGI:
    """ASGI middleware that reports unhandled exceptions and 5xx responses.

    Usage (FastAPI / Starlette)::

        from bloop_client import BloopClient
        from bloop_client.middleware import BloopASGI

        client = BloopClient({"endpoint": "...", "project_key": "..."})
        app.add_middleware(BloopASGI, client=client)
    """

    def __init__(self, app: Any, client: BloopClient | None = None, **kwargs: Any) -> None:
        self.app = app
        self.client = client

    async def __call__(self, scope: dict, receive: Any, send: Any) -> None:
        if scope["type"] != "http" or self.client is None:
            await self.app(scope, receive, send)
            return

        status_code = 0

        async def send_wrapper(message: dict) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            self._report(scope, exc=exc)
            raise
        self._report(scope, status_code=status_code)

    def _report(self, scope: dict, exc: BaseException | None = None, status_code: int = 0) -> None:
        client = self.client
        if client is None:
            return
        try:
            # ASGI headers are a list of [name, value] byte pairs
            headers: dict[str, str] = {}
            for name, value in scope.get("headers", []):
                headers[name.decode("latin-1").lower()] = value.decode("latin-1")

            fields = request_fields(client, scope.get("path", "/"), headers)
            if exc is not None:
                report_exception(client, exc, fields)
            else:
                report_status(client, status_code, fields)
        except Exception:
            pass  # Never crash the app
