from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Callable

_OPTIONAL_EVENT_FIELDS = (
    "route_or_procedure",
    "screen",
    "stack",
    "http_status",
    "request_id",
    "user_id_hash",
    "metadata",
)


@dataclass(frozen=True)
class Event:
    error_type: str
    message: str
    source: str | None = None
    route_or_procedure: str | None = None
    screen: str | None = None
    stack: str | None = None
    http_status: int | None = None
    request_id: str | None = None
    user_id_hash: str | None = None
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class IngestEvent:
    """An Event stamped with capture time and client configuration."""

    timestamp: int  # ms since epoch
    source: str
    environment: str
    release: str
    error_type: str
    message: str
    route_or_procedure: str | None = None
    screen: str | None = None
    stack: str | None = None
    http_status: int | None = None
    request_id: str | None = None
    user_id_hash: str | None = None
    metadata: dict[str, Any] | None = None

    @classmethod
    def from_event(
        cls,
        event: Event,
        *,
        timestamp: int,
        environment: str,
        release: str,
        default_source: str,
    ) -> IngestEvent:
        return cls(
            timestamp=timestamp,
            source=default_source if event.source is None else event.source,
            environment=environment,
            release=release,
            error_type=event.error_type,
            message=event.message,
            **{name: getattr(event, name) for name in _OPTIONAL_EVENT_FIELDS},
        )

    def to_dict(self) -> dict[str, Any]:
        """Wire form; unset optional fields are omitted, not sent as null."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


@dataclass
class Options:
    endpoint: str = ""
    project_key: str = ""
    environment: str = "production"
    release: str = ""
    source: str = "python"
    max_buffer_size: int = 20
    tracing: bool = True
    max_in_flight: int = 4  # concurrent threshold dispatches
    send_timeout: float = 5.0  # seconds
    debug: bool = False
    on_error: Callable[[Exception], None] | None = None
    identify_user: Callable[[dict[str, str]], str | None] | None = None
