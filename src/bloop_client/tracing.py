"""Trace and span records for LLM / agent pipelines.

A Trace is one end-to-end operation; each Span is one timed unit of work
inside it (a model call, a tool call, a retrieval).  Spans refer to their
parent by id only, the backend rebuilds the call tree.

Usage::

    trace = client.start_trace("chat-completion", session_id="s-1")
    span = trace.start_span(SpanType.GENERATION, "gpt-4o call", model="gpt-4o")
    span.set_usage(120, 48, 0.0031)
    span.end(SpanStatus.OK)
    trace.end(TraceStatus.COMPLETED)
    client.send_trace(trace)
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any


class SpanType(str, Enum):
    GENERATION = "generation"
    TOOL = "tool"
    RETRIEVAL = "retrieval"
    CUSTOM = "custom"


class SpanStatus(str, Enum):
    OK = "ok"
    ERROR = "error"


class TraceStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_id() -> str:
    return str(uuid.uuid4())


def _wire_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


@dataclass
class Span:
    span_type: SpanType
    name: str
    parent_span_id: str | None = None
    model: str | None = None
    provider: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    cost: float | None = None
    latency_ms: int | None = None
    time_to_first_token_ms: int | None = None
    status: SpanStatus | None = None
    error_message: str | None = None
    input: str | None = None
    output: str | None = None
    metadata: dict[str, Any] | None = None
    id: str = field(default_factory=_new_id)
    started_at: int = field(default_factory=_now_ms)

    def end(self, status: SpanStatus = SpanStatus.OK) -> None:
        """Stamp latency and final status.  A second call overwrites both."""
        self.latency_ms = max(0, _now_ms() - self.started_at)
        self.status = SpanStatus(status)

    def set_usage(self, input_tokens: int, output_tokens: int, cost: float) -> None:
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.cost = cost

    def set_output(self, output: str) -> None:
        self.output = output

    def set_error(self, message: str) -> None:
        # Marks the span failed without ending it; call end() for latency.
        self.status = SpanStatus.ERROR
        self.error_message = message

    def set_time_to_first_token(self, ms: int) -> None:
        self.time_to_first_token_ms = ms

    @property
    def ended(self) -> bool:
        return self.latency_ms is not None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None:
                out[f.name] = _wire_value(value)
        return out

    def __enter__(self) -> Span:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if self.ended:
            return
        if exc is not None:
            self.set_error(str(exc) or exc_type.__name__)
            self.end(SpanStatus.ERROR)
        else:
            self.end(self.status or SpanStatus.OK)


@dataclass
class Trace:
    name: str
    session_id: str | None = None
    user_id: str | None = None
    input: str | None = None
    output: str | None = None
    metadata: dict[str, Any] | None = None
    prompt_name: str | None = None
    prompt_version: str | None = None
    status: TraceStatus = TraceStatus.RUNNING
    ended_at: int | None = None
    spans: list[Span] = field(default_factory=list)
    id: str = field(default_factory=_new_id)
    started_at: int = field(default_factory=_now_ms)

    def start_span(self, span_type: SpanType, name: str, **kwargs: Any) -> Span:
        """Create a span and append it to this trace right away.

        The returned object is the one held in ``spans``; configure it in
        place.
        """
        span = Span(SpanType(span_type), name, **kwargs)
        self.spans.append(span)
        return span

    def end(self, status: TraceStatus = TraceStatus.COMPLETED) -> None:
        status = TraceStatus(status)
        if status is TraceStatus.RUNNING:
            raise ValueError("a trace cannot be ended as running")
        self.ended_at = _now_ms()
        self.status = status

    def set_output(self, output: str) -> None:
        self.output = output

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if f.name == "spans":
                out["spans"] = [span.to_dict() for span in value]
            else:
                out[f.name] = _wire_value(value)
        return out

    def __enter__(self) -> Trace:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if self.ended_at is not None:
            return
        self.end(TraceStatus.ERROR if exc is not None else TraceStatus.COMPLETED)
