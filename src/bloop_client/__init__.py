"""Bloop — Python SDK for error and trace reporting."""

from ._identity import default_identify_user, hash_user_id
from ._signing import sign
from .client import BloopClient, DispatchError
from .middleware import BloopASGI, BloopMiddleware, BloopWSGI
from .tracing import Span, SpanStatus, SpanType, Trace, TraceStatus
from .types import Event, Options

__all__ = [
    "BloopASGI",
    "BloopClient",
    "BloopMiddleware",
    "BloopWSGI",
    "DispatchError",
    "Event",
    "Options",
    "Span",
    "SpanStatus",
    "SpanType",
    "Trace",
    "TraceStatus",
    "default_identify_user",
    "hash_user_id",
    "sign",
]
