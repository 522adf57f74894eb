"""Parsing and encoding of background event payloads."""

from __future__ import annotations

import base64
import json
import sys
import types
import typing
from datetime import date, datetime
from typing import Any, Callable

from funcframework.fftypes import Metadata, Resource, format_timestamp
from funcframework.pubsub import (
    LegacyPushSubscriptionEvent,
    TopicExtractionError,
    extract_topic_from_request_path,
)

CE_ID_HEADER = "Ce-Id"
CONTENT_TYPE_HEADER = "Content-Type"
CONTENT_LENGTH_HEADER = "Content-Length"

CE_SPEC_VERSION = "1.0"
JSON_CONTENT_TYPE = "application/cloudevents+json"

FIREBASE_AUTH_CE_SERVICE = "firebaseauth.googleapis.com"
FIREBASE_CE_SERVICE = "firebase.googleapis.com"
FIREBASE_DB_CE_SERVICE = "firebasedatabase.googleapis.com"
FIRESTORE_CE_SERVICE = "firestore.googleapis.com"
PUBSUB_CE_SERVICE = "pubsub.googleapis.com"
STORAGE_CE_SERVICE = "storage.googleapis.com"

PUBSUB_MESSAGE_TYPE = "type.googleapis.com/google.pubsub.v1.PubsubMessage"

_LEGACY_KEYS = ("subscription", "message")
_BACKGROUND_KEYS = ("data", "context")

_CO_VARARGS = 0x04
_CO_VARKEYWORDS = 0x08
_EMPTY = object()
_UNKNOWN = object()

# Annotation names, as written in source text, that can be judged without
# resolving them against a module.
_KNOWN_NAMES: dict[str, Any] = {
    "None": type(None),
    "Any": Any,
    "typing.Any": Any,
    "object": object,
    "Metadata": Metadata,
    "fftypes.Metadata": Metadata,
    "funcframework.fftypes.Metadata": Metadata,
    "int": int,
    "float": float,
    "str": str,
    "bool": bool,
    "bytes": bytes,
    "dict": dict,
    "list": list,
    "tuple": tuple,
    "set": set,
    "datetime": datetime,
    "datetime.datetime": datetime,
    "date": date,
    "datetime.date": date,
}

_OPTIONAL_PREFIXES = ("Optional[", "typing.Optional[")
_UNION_PREFIXES = ("Union[", "typing.Union[")


class EventConversionError(ValueError):
    """Raised when an event payload cannot be parsed, converted or encoded."""


def _decode_text(body: bytes | str) -> str:
    if isinstance(body, (bytes, bytearray)):
        return bytes(body).decode("utf-8", errors="replace")
    return body


def get_background_event(body: bytes | str, path: str) -> tuple[Metadata | None, Any]:
    """Extract the metadata and data of a background event from a request body.

    Returns ``(None, None)`` when the body is valid JSON but not a background
    event; raises :class:`EventConversionError` when it cannot be parsed.
    """
    try:
        payload = json.loads(_decode_text(body))
    except json.JSONDecodeError as exc:
        raise EventConversionError(str(exc)) from exc
    if payload is None:
        return None, None
    if not isinstance(payload, dict):
        raise EventConversionError(f"cannot read a background event from {payload!r}")

    try:
        legacy = (
            LegacyPushSubscriptionEvent.from_dict(payload)
            if any(key in payload for key in _LEGACY_KEYS)
            else None
        )
        has_background = any(key in payload for key in _BACKGROUND_KEYS)
        context = payload.get("context")
        context_metadata = Metadata.from_dict(context) if context is not None else None
    except ValueError as exc:
        raise EventConversionError(str(exc)) from exc

    data: Any = None
    metadata: Metadata | None = None
    found = False
    if has_background:
        data, metadata, found = payload.get("data"), context_metadata, True
    elif legacy is not None:
        try:
            topic = extract_topic_from_request_path(path)
        except TopicExtractionError as exc:
            sys.stdout.write(f"WARNING: {exc}")
            topic = ""
        event = legacy.to_background_event(topic)
        data, metadata, found = event.data, event.metadata, True

    if not found or data is None:
        return None, None
    if metadata is not None:
        return metadata, data

    try:
        metadata = Metadata.from_dict(payload)
    except ValueError as exc:
        raise EventConversionError(str(exc)) from exc
    if not metadata.event_id:
        return None, None
    return metadata, data


def _split_top_level(text: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    current = ""
    for char in text:
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
        if char in ",|" and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += char
    parts.append(current)
    return [part.strip() for part in parts if part.strip()]


def _annotation_names(text: str) -> list[str]:
    """Break a textual annotation into the bare names of its alternatives."""
    names: list[str] = []
    for part in _split_top_level(text.strip()):
        inner = None
        if part.endswith("]"):
            for prefix in _OPTIONAL_PREFIXES:
                if part.startswith(prefix):
                    inner = part[len(prefix) : -1]
                    names.append("None")
            for prefix in _UNION_PREFIXES:
                if part.startswith(prefix):
                    inner = part[len(prefix) : -1]
        if inner is not None:
            names.extend(_annotation_names(inner))
        else:
            names.append(part.split("[", 1)[0].strip())
    return names


def _accepts_metadata(annotation: Any) -> bool:
    if annotation is _EMPTY or annotation is _UNKNOWN or annotation is Any or annotation is object:
        return True
    if isinstance(annotation, str):
        return any(
            _accepts_metadata(_KNOWN_NAMES.get(name, _UNKNOWN))
            for name in _annotation_names(annotation)
        )
    origin = typing.get_origin(annotation)
    if origin is typing.Union or isinstance(annotation, types.UnionType):
        return any(_accepts_metadata(arg) for arg in typing.get_args(annotation))
    if isinstance(annotation, type):
        return issubclass(Metadata, annotation)
    return True


def _function_parts(fn: Callable[..., Any]) -> tuple[Any, int]:
    """Return the plain function behind ``fn`` and how many leading parameters are bound."""
    if isinstance(fn, types.MethodType):
        target, skip = fn.__func__, 1
    elif hasattr(fn, "__code__"):
        target, skip = fn, 0
    else:
        target, skip = getattr(type(fn), "__call__", None), 1
    if not hasattr(target, "__code__"):
        raise TypeError(f"cannot determine the parameters of {fn!r}")
    return target, skip


def validate_event_function(fn: Callable[..., Any]) -> None:
    """Check that ``fn`` takes the event context and the event data.

    The first parameter receives the event :class:`Metadata` (or ``None``),
    the second the decoded data. Raises :class:`TypeError` otherwise.
    """
    if not callable(fn):
        raise TypeError(f"expected a callable event function, got {fn!r}")
    target, skip = _function_parts(fn)
    code = target.__code__
    names = code.co_varnames
    positional = names[skip : code.co_argcount]
    keyword_only = names[code.co_argcount : code.co_argcount + code.co_kwonlyargcount]
    keyword_defaults = getattr(target, "__kwdefaults__", None) or {}
    variadic = bool(code.co_flags & _CO_VARARGS)
    var_keyword = bool(code.co_flags & _CO_VARKEYWORDS)
    required_keyword = any(name not in keyword_defaults for name in keyword_only)
    if len(positional) != 2 or variadic or required_keyword:
        total = len(positional) + len(keyword_only) + variadic + var_keyword
        raise TypeError(f"expected function to have two parameters, found {total}")
    annotations = getattr(target, "__annotations__", None) or {}
    if not _accepts_metadata(annotations.get(positional[0], _EMPTY)):
        raise TypeError("expected first parameter to accept the event context")


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, Metadata):
        return value.to_dict()
    if isinstance(value, Resource):
        return value.to_json()
    raise TypeError(f"object of type {type(value).__name__} is not JSON serializable")


def encode_data(data: Any) -> bytes:
    """Encode ``data`` as one line of JSON, without HTML escaping."""
    try:
        text = json.dumps(
            data,
            ensure_ascii=False,
            separators=(",", ":"),
            sort_keys=True,
            allow_nan=False,
            default=_json_default,
        )
    except (TypeError, ValueError) as exc:
        raise EventConversionError(f"unable to encode data {data!r}: {exc}") from exc
    text = text.replace("\u2028", "\\u2028").replace("\u2029", "\\u2029")
    return (text + "\n").encode("utf-8")