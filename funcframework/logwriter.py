"""Per-request logging IDs and a structured, line-oriented log writer."""

from __future__ import annotations

import json
import random
import re
import sys
import threading
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, TextIO

# TRACE_ID, then optional /SPAN_ID, then optional ;o=TRACE_TRUE
_X_CLOUD_TRACE_CONTEXT = re.compile(r"([a-f\d]+)?(?:/([a-f\d]+))?(?:;o=(\d))?")

_LOGGING_IDS: ContextVar[LoggingIDs | None] = ContextVar("logging_ids", default=None)

_JSON_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


@dataclass(frozen=True)
class LoggingIDs:
    """Identifiers attached to every structured log line of a request."""

    trace: str = ""
    span_id: str = ""
    execution_id: str = ""


def deconstruct_x_cloud_trace_context(value: str) -> tuple[str, str, bool]:
    """Split ``TRACE_ID/SPAN_ID;o=TRACE_TRUE`` into trace, span and sampled flag."""
    trace_id, span_id, sampled = "", "", False
    match = _X_CLOUD_TRACE_CONTEXT.search(value)
    if match is not None:
        trace_id = match.group(1) or ""
        span_id = match.group(2) or ""
        sampled = match.group(3) == "1"
    if span_id == "0":
        span_id = ""
    return trace_id, span_id, sampled


def _header(headers: Mapping[str, str], name: str) -> str:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return ""


def logging_ids_from_headers(headers: Mapping[str, str]) -> LoggingIDs:
    """Build logging IDs from request headers, generating an execution ID if absent."""
    execution_id = _header(headers, "Function-Execution-Id")
    if not execution_id:
        execution_id = f"{time.time_ns():06x}{random.getrandbits(63):06x}"
    trace_id, span_id, _ = deconstruct_x_cloud_trace_context(_header(headers, "X-Cloud-Trace-Context"))
    return LoggingIDs(trace=trace_id, span_id=span_id, execution_id=execution_id)


@contextmanager
def bind_logging_ids(ids: LoggingIDs | None) -> Iterator[LoggingIDs | None]:
    """Make ``ids`` the current logging IDs for the duration of the block."""
    token = _LOGGING_IDS.set(ids)
    try:
        yield ids
    finally:
        _LOGGING_IDS.reset(token)


def current_logging_ids() -> LoggingIDs | None:
    """Return the logging IDs bound to the current context, if any."""
    return _LOGGING_IDS.get()


def trace_id_from_context() -> str:
    ids = current_logging_ids()
    return "" if ids is None else ids.trace


def span_id_from_context() -> str:
    ids = current_logging_ids()
    return "" if ids is None else ids.span_id


def execution_id_from_context() -> str:
    ids = current_logging_ids()
    return "" if ids is None else ids.execution_id


def _encode_event(ids: LoggingIDs, message: str) -> str:
    event: dict[str, Any] = {"message": message}
    if ids.trace:
        event["logging.googleapis.com/trace"] = ids.trace
    if ids.span_id:
        event["logging.googleapis.com/spanId"] = ids.span_id
    if ids.execution_id:
        event["logging.googleapis.com/labels"] = {"execution_id": ids.execution_id}
    text = json.dumps(event, ensure_ascii=False, separators=(",", ":"))
    for char, escape in _JSON_ESCAPES.items():
        text = text.replace(char, escape)
    return text + "\n"


class StructuredLogWriter:
    """A text sink that emits one JSON log event per line written to it."""

    def __init__(self, stream: TextIO, logging_ids: LoggingIDs) -> None:
        self._stream = stream
        self._ids = logging_ids
        self._buffer = ""
        self._lock = threading.Lock()

    def _emit(self, message: str) -> None:
        self._stream.write(_encode_event(self._ids, message))

    def write(self, text: str | bytes) -> int:
        """Buffer ``text`` and emit an event for every complete line."""
        if isinstance(text, (bytes, bytearray)):
            text = bytes(text).decode("utf-8", errors="replace")
        with self._lock:
            self._buffer += text
            *lines, self._buffer = self._buffer.split("\n")
            for line in lines:
                self._emit(line.removesuffix("\r"))
        return len(text)

    def flush(self) -> None:
        flush = getattr(self._stream, "flush", None)
        if flush is not None:
            flush()

    def close(self) -> None:
        """Emit whatever unterminated text is still buffered."""
        with self._lock:
            if self._buffer:
                self._emit(self._buffer)
                self._buffer = ""

    def __enter__(self) -> StructuredLogWriter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def log_writer() -> TextIO | StructuredLogWriter:
    """Return a log sink for the current request, or stderr outside one."""
    ids = current_logging_ids()
    if ids is None:
        return sys.stderr
    return StructuredLogWriter(sys.stderr, ids)