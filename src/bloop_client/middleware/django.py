"""Django middleware — reads config from settings.BLOOP."""

from __future__ import annotations

from typing import Any

from ..client import BloopClient
from ._request import headers_from_environ, report_exception, report_status, request_fields

_REPORTED_KEY = "bloop.reported"


class BloopMiddleware:
    """Django middleware that reports unhandled exceptions and 5xx responses.

    Usage (settings.py)::

        BLOOP = {
            "endpoint": "https://ingest.example.com",
            "project_key": "your-project-key",
            "environment": "staging",
        }

        MIDDLEWARE = [
            "bloop_client.middleware.django.BloopMiddleware",
            # ...
        ]
    """

    _client: BloopClient | None = None

    def __init__(self, get_response: Any) -> None:
        self.get_response = get_response

        # Initialize client on first instantiation
        if BloopMiddleware._client is None:
            try:
                from django.conf import settings  # type: ignore[import-untyped]

                config = getattr(settings, "BLOOP", None)
                if config and isinstance(config, dict):
                    BloopMiddleware._client = BloopClient(config)
            except Exception:
                pass  # Django not available or bad config: passthrough

    def __call__(self, request: Any) -> Any:
        response = self.get_response(request)

        client = self._client
        if client is None or request.META.get(_REPORTED_KEY):
            return response

        try:
            fields = request_fields(client, request.path, headers_from_environ(request.META))
            report_status(client, response.status_code, fields)
        except Exception:
            pass  # Never crash the app

        return response

    def process_exception(self, request: Any, exception: Exception) -> None:
        """Django hook for exceptions raised by the view.

        Returning None lets Django's own handling (and other middleware) run.
        """
        client = self._client
        if client is None:
            return None
        try:
            fields = request_fields(client, request.path, headers_from_environ(request.META))
            report_exception(client, exception, fields)
            # The 500 response Django builds afterwards is the same failure.
            request.META[_REPORTED_KEY] = True
        except Exception:
            pass  # Never crash the app
        return None
