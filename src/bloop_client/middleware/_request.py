from __future__ import annotations

from typing import Any

from .._identity import default_identify_user
from ..client import BloopClient


def headers_from_environ(environ: dict) -> dict[str, str]:
    """Extract HTTP headers from a WSGI environ / Django META (HTTP_* keys)."""
    headers: dict[str, str] = {}
    for key, value in environ.items():
        if key.startswith("HTTP_"):
            header_name = key[5:].lower().replace("_", "-")
            headers[header_name] = value
    return headers


def request_fields(client: BloopClient, path: str, headers: dict[str, str]) -> dict[str, Any]:
    """Event fields shared by every error reported for one request."""
    if client.identify_user:
        user_id_hash = client.identify_user(headers)
    else:
        user_id_hash = default_identify_user(headers)
    fields: dict[str, Any] = {"route_or_procedure": path}
    if user_id_hash:
        fields["user_id_hash"] = user_id_hash
    request_id = headers.get("x-request-id")
    if request_id:
        fields["request_id"] = request_id
    return fields


def report_exception(client: BloopClient, exc: BaseException, fields: dict[str, Any]) -> None:
    client.capture_exception(exc, http_status=500, **fields)


def report_status(client: BloopClient, status_code: int, fields: dict[str, Any]) -> None:
    """Report a 5xx response that did not come from an escaping exception."""
    if status_code >= 500:
        client.capture_error("HTTPError", f"HTTP {status_code}", http_status=status_code, **fields)
