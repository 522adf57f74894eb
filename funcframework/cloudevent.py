"""CloudEvents received over HTTP in binary or structured content mode."""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from funcframework.fftypes import format_timestamp, parse_timestamp

STRUCTURED_CONTENT_TYPE = "application/cloudevents+json"
BATCH_CONTENT_TYPE = "application/cloudevents-batch+json"
SUPPORTED_SPEC_VERSIONS = ("1.0", "0.3")

_REQUIRED = ("id", "source", "specversion", "type")
_STRING_ATTRIBUTES = ("id", "source", "specversion", "type", "subject", "datacontenttype", "dataschema")
_KNOWN = {*_STRING_ATTRIBUTES, "time", "data", "data_base64"}


class CloudEventError(ValueError):
    """Raised when a request does not carry a valid CloudEvent."""


@dataclass
class CloudEvent:
    """A CloudEvent: context attributes, extensions and data."""

    id: str
    source: str
    type: str
    specversion: str = "1.0"
    subject: str | None = None
    time: datetime | None = None
    datacontenttype: str | None = None
    dataschema: str | None = None
    data: Any = None
    extensions: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return the structured JSON form of the event."""
        out: dict[str, Any] = {
            "specversion": self.specversion,
            "id": self.id,
            "source": self.source,
            "type": self.type,
        }
        for key in ("subject", "datacontenttype", "dataschema"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        if self.time is not None:
            out["time"] = format_timestamp(self.time)
        out.update(self.extensions)
        if isinstance(self.data, (bytes, bytearray)):
            out["data_base64"] = base64.b64encode(bytes(self.data)).decode("ascii")
        elif self.data is not None:
            out["data"] = self.data
        return out


def _media_type(content_type: str | None) -> str:
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def _is_json(content_type: str | None) -> bool:
    media = _media_type(content_type)
    return media == "" or media == "application/json" or media.endswith("+json") or media == "text/json"


def _decode_payload(content_type: str | None, body: bytes) -> Any:
    if not body:
        return None
    if _is_json(content_type):
        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            pass
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError:
        return body


def _build(attributes: Mapping[str, Any], data: Any) -> CloudEvent:
    for key in _STRING_ATTRIBUTES:
        value = attributes.get(key)
        if value is not None and not isinstance(value, str):
            raise CloudEventError(f"attribute {key!r} must be a string, got {value!r}")
    missing = [key for key in _REQUIRED if not attributes.get(key)]
    if missing:
        raise CloudEventError(f"missing required attributes: {', '.join(missing)}")
    if attributes["specversion"] not in SUPPORTED_SPEC_VERSIONS:
        raise CloudEventError(f"unsupported specversion: {attributes['specversion']!r}")
    try:
        time = parse_timestamp(attributes.get("time"))
    except ValueError as exc:
        raise CloudEventError(str(exc)) from exc
    return CloudEvent(
        id=attributes["id"],
        source=attributes["source"],
        type=attributes["type"],
        specversion=attributes["specversion"],
        subject=attributes.get("subject"),
        time=time,
        datacontenttype=attributes.get("datacontenttype"),
        dataschema=attributes.get("dataschema"),
        data=data,
        extensions={k: v for k, v in attributes.items() if k not in _KNOWN},
    )


def _from_structured(body: bytes) -> CloudEvent:
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CloudEventError(f"invalid structured CloudEvent: {exc}") from exc
    if not isinstance(payload, dict):
        raise CloudEventError("structured CloudEvent must be a JSON object")
    if "data_base64" in payload:
        encoded = payload["data_base64"]
        if not isinstance(encoded, str):
            raise CloudEventError("data_base64 must be a string")
        try:
            data: Any = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CloudEventError(f"invalid data_base64: {exc}") from exc
    else:
        data = payload.get("data")
    return _build(payload, data)


def from_http(headers: Mapping[str, str], body: bytes | str) -> CloudEvent:
    """Read a CloudEvent from HTTP headers and body, in either content mode."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    lowered = {key.lower(): value for key, value in headers.items()}
    content_type = lowered.get("content-type")
    media = _media_type(content_type)
    if media == STRUCTURED_CONTENT_TYPE:
        return _from_structured(body)
    if media == BATCH_CONTENT_TYPE:
        raise CloudEventError("batched CloudEvents are not supported")
    attributes = {key[3:]: value for key, value in lowered.items() if key.startswith("ce-")}
    if "specversion" not in attributes:
        raise CloudEventError("request is not a CloudEvent: missing ce-specversion header")
    if content_type:
        attributes["datacontenttype"] = content_type
    return _build(attributes, _decode_payload(content_type, body))