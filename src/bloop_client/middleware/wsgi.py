"""WSGI middleware — works with Flask, Bottle, and any WSGI app."""

from __future__ import annotations

import contextlib
from typing import Any

from ..client import BloopClient
from ._request import headers_from_environ, report_exception, report_status, request_fields


class BloopWSGI:
    """WSGI middleware that reports unhandled exceptions and 5xx responses.

    Usage (Flask)::

        from bloop_client import BloopClient
        from bloop_client.middleware import BloopWSGI

        client = BloopClient({"endpoint": "...", "project_key": "..."})
        app.wsgi_app = BloopWSGI(app.wsgi_app, client=client)
    """

    def __init__(self, app: Any, client: BloopClient | None = None) -> None:
        self.app = app
        self.client = client

    def __call__(self, environ: dict, start_response: Any) -> Any:
        if self.client is None:
            return self.app(environ, start_response)

        status_code = 0

        def tracking_start_response(status: str, headers: list, exc_info: Any = None) -> Any:
            nonlocal status_code
            with contextlib.suppress(ValueError, IndexError, AttributeError):
                status_code = int(status.split(" ", 1)[0])
            return start_response(status, headers, exc_info)

        try:
            response = self.app(environ, tracking_start_response)
        except Exception as exc:
            self._report(environ, exc=exc)
            raise
        # status_code is only known once start_response has run, which may be
        # deferred until the first chunk is produced.
        return _ResponseWrapper(response, self, environ, lambda: status_code)

    def _report(self, environ: dict, exc: BaseException | None = None, status_code: int = 0) -> None:
        client = self.client
        if client is None:
            return
        try:
            fields = request_fields(client, environ.get("PATH_INFO", "/"), headers_from_environ(environ))
            if exc is not None:
                report_exception(client, exc, fields)
            else:
                report_status(client, status_code, fields)
        except Exception:
            pass  # Never crash the app


class _ResponseWrapper:
    """Wraps a WSGI response iterator to catch errors raised while streaming."""

    def __init__(self, response: Any, middleware: BloopWSGI, environ: dict, status: Any) -> None:
        self._response = response
        self._middleware = middleware
        self._environ = environ
        self._status = status

    def __iter__(self) -> Any:
        try:
            yield from self._response
        except Exception as exc:
            self._middleware._report(self._environ, exc=exc)
            raise
        else:
            self._middleware._report(self._environ, status_code=self._status())

    def close(self) -> None:
        if hasattr(self._response, "close"):
            self._response.close()
