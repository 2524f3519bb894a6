from __future__ import annotations

import atexit
import json
import logging
import threading
import time
import traceback
import urllib.error
import urllib.request
from concurrent.futures import Future, ThreadPoolExecutor, wait
from functools import partial
from typing import Any, Protocol

from ._buffer import BatchBuffer
from ._signing import sign
from .tracing import Trace
from .types import Event, IngestEvent, Options

logger = logging.getLogger("bloop_client")

# --- Wire paths ---
ERRORS_PATH = "/v1/ingest/batch"
TRACES_PATH = "/v1/traces/batch"


class DispatchError(Exception):
    """A batch was not accepted by the ingestion endpoint."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class TraceSink(Protocol):
    """Accepts traces already encoded as JSON objects."""

    def push(self, item: str) -> None: ...

    def drain(self) -> list[str]: ...

    def __len__(self) -> int: ...


class _NoopTraceSink:
    """Trace sink used when tracing is disabled; traces are discarded."""

    def __init__(self, debug: bool = False) -> None:
        self._debug = debug

    def push(self, item: str) -> None:
        if self._debug:
            logger.debug("bloop: tracing disabled, dropping trace")

    def drain(self) -> list[str]:
        return []

    def __len__(self) -> int:
        return 0


class BloopClient:
    """Buffered error and trace reporter.

    Errors and traces accumulate in two in-memory buffers.  Each time a
    buffer reaches ``max_buffer_size`` its contents are handed to a worker
    pool that signs and POSTs them; the calling thread never waits on the
    network.  ``flush()`` sends whatever is left, inline, and runs again at
    interpreter exit.

    Items are encoded to JSON when captured, so the buffers hold immutable
    snapshots and one unserializable event never spoils a batch.

    Delivery is best effort: failed batches are dropped (reported to
    ``on_error`` when set) and nothing survives a process restart.
    """

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def __init__(self, options: Options | dict[str, Any]) -> None:
        if isinstance(options, dict):
            options = Options(**options)

        # --- Validate ---
        if not options.endpoint:
            raise ValueError("endpoint is required")
        if not options.project_key:
            raise ValueError("project_key is required")
        if options.max_buffer_size < 1:
            raise ValueError(f"max_buffer_size must be >= 1, got {options.max_buffer_size}")
        if options.max_in_flight < 1:
            raise ValueError(f"max_in_flight must be >= 1, got {options.max_in_flight}")

        self._endpoint = options.endpoint.rstrip("/")
        self._project_key = options.project_key
        self._environment = options.environment
        self._release = options.release
        self._source = options.source
        self._send_timeout = options.send_timeout
        self._debug = options.debug
        self._on_error = options.on_error
        self.identify_user = options.identify_user

        # --- Dispatch pool ---
        # max_in_flight bounds concurrent sends; further batches queue up.
        self._executor = ThreadPoolExecutor(
            max_workers=options.max_in_flight, thread_name_prefix="bloop-dispatch"
        )
        self._pending: set[Future[None]] = set()
        self._pending_lock = threading.Lock()

        # --- Buffers ---
        self._errors: BatchBuffer[str] = BatchBuffer(
            options.max_buffer_size, partial(self._schedule, ERRORS_PATH, "events")
        )
        self._traces: TraceSink
        if options.tracing:
            self._traces = BatchBuffer(
                options.max_buffer_size, partial(self._schedule, TRACES_PATH, "traces")
            )
        else:
            self._traces = _NoopTraceSink(self._debug)

        atexit.register(self._atexit_handler)

    def __repr__(self) -> str:
        return (
            f"BloopClient(endpoint={self._endpoint!r}, "
            f"environment={self._environment!r}, source={self._source!r})"
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def capture(self, event: Event | dict[str, Any]) -> None:
        """Buffer an error event.  Never raises."""
        try:
            self._capture_inner(event)
        except Exception:
            if self._debug:
                logger.exception("bloop: capture() error")

    def capture_error(self, error_type: str, message: str, **fields: Any) -> None:
        """Buffer an error from its type and message plus optional Event fields."""
        self.capture({"error_type": error_type, "message": message, **fields})

    def capture_exception(self, exc: BaseException, **fields: Any) -> None:
        """Buffer an exception with its formatted traceback as the stack."""
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        self.capture(
            {
                "error_type": type(exc).__name__,
                "message": str(exc),
                "stack": stack,
                **fields,
            }
        )

    def start_trace(self, name: str, **fields: Any) -> Trace:
        return Trace(name, **fields)

    def send_trace(self, trace: Trace) -> None:
        """Buffer a finished trace.  Never raises."""
        try:
            raw = self._encode(trace.to_dict(), "trace")
            if raw is not None:
                self._traces.push(raw)
        except Exception:
            if self._debug:
                logger.exception("bloop: send_trace() error")

    def flush(self) -> None:
        """Send all buffered errors, then traces (blocks until complete)."""
        events = self._errors.drain()
        if events:
            self._dispatch(ERRORS_PATH, "events", events)
        traces = self._traces.drain()
        if traces:
            self._dispatch(TRACES_PATH, "traces", traces)

    def shutdown(self) -> None:
        """Flush, then wait for threshold dispatches still in flight."""
        self.flush()
        self._wait_for_dispatch()

    # ------------------------------------------------------------------
    # Capture internals
    # ------------------------------------------------------------------

    def _capture_inner(self, event: Event | dict[str, Any]) -> None:
        if not isinstance(event, Event):
            event = Event(**event)
        ingest = IngestEvent.from_event(
            event,
            timestamp=int(time.time() * 1000),
            environment=self._environment,
            release=self._release,
            default_source=self._source,
        )
        raw = self._encode(ingest.to_dict(), "event")
        if raw is not None:
            self._errors.push(raw)

    def _encode(self, item: dict[str, Any], kind: str) -> str | None:
        """Snapshot one item as JSON, or drop it alone if it cannot be encoded."""
        try:
            return json.dumps(item, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            if self._debug:
                logger.warning("bloop: %s not JSON-serializable, dropping: %s", kind, exc)
            self._call_on_error(exc)
            return None

    # ------------------------------------------------------------------
    # Dispatch internals
    # ------------------------------------------------------------------

    def _schedule(self, path: str, envelope: str, batch: list[str]) -> None:
        # Runs under the buffer lock: enqueue only.  If the pool is shut down
        # (interpreter exit) submit raises and the buffer keeps the batch.
        future = self._executor.submit(self._dispatch, path, envelope, batch)
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future[None]) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _wait_for_dispatch(self, timeout: float | None = None) -> None:
        with self._pending_lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def _dispatch(self, path: str, envelope: str, batch: list[str]) -> None:
        try:
            # Items are already compact JSON objects.
            body = f'{{"{envelope}":[{",".join(batch)}]}}'.encode()
            self._send(path, body)
            if self._debug:
                logger.debug("bloop: sent %d %s to %s", len(batch), envelope, path)
        except Exception as exc:
            if self._debug:
                logger.warning("bloop: dropped %d %s: %s", len(batch), envelope, exc)
            self._call_on_error(exc)

    def _send(self, path: str, body: bytes) -> None:
        req = urllib.request.Request(
            self._endpoint + path,
            data=body,
            headers={
                "Content-Type": "application/json",
                "X-Signature": sign(self._project_key, body),
                "X-Project-Key": self._project_key,
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self._send_timeout) as resp:
                resp.read()  # drain body
                if resp.status < 200 or resp.status >= 300:
                    raise DispatchError(f"HTTP {resp.status}", resp.status)
        except urllib.error.HTTPError as exc:
            snippet = ""
            try:
                snippet = exc.read(1024).decode(errors="replace")
            except Exception:
                pass
            raise DispatchError(f"HTTP {exc.code}: {snippet}", exc.code) from exc
        except urllib.error.URLError as exc:
            raise DispatchError(f"Network error: {exc.reason}") from exc

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _atexit_handler(self) -> None:
        self.flush()

    def _call_on_error(self, exc: Exception) -> None:
        if self._on_error:
            try:
                self._on_error(exc)
            except Exception:
                pass
