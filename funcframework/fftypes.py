"""Core event types: background event metadata, resources and timestamps."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

_RFC3339 = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d+))?"
    r"([Zz]|[+-]\d{2}:\d{2})"
)
_ZERO_TIME = "0001-01-01T00:00:00Z"


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC 3339 timestamp; ``None`` and the zero time give ``None``."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be a string, got {value!r}")
    match = _RFC3339.fullmatch(value)
    if match is None:
        raise ValueError(f"cannot parse {value!r} as an RFC 3339 timestamp")
    year, month, day, hour, minute, second = (int(g) for g in match.groups()[:6])
    fraction = match.group(7) or ""
    microsecond = int((fraction + "000000")[:6])
    zone = match.group(8)
    if zone.upper() == "Z":
        tz = timezone.utc
    else:
        sign = 1 if zone[0] == "+" else -1
        offset = timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6]))
        tz = timezone(sign * offset)
    try:
        parsed = datetime(year, month, day, hour, minute, second, microsecond, tzinfo=tz)
    except ValueError as exc:
        raise ValueError(f"cannot parse {value!r} as an RFC 3339 timestamp") from exc
    if format_timestamp(parsed) == _ZERO_TIME:
        return None
    return parsed


def format_timestamp(value: datetime | None) -> str:
    """Format a timestamp as RFC 3339 with trailing fractional zeros trimmed."""
    if value is None:
        return _ZERO_TIME
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    offset = value.utcoffset()
    if not offset:
        return text + "Z"
    minutes = int(offset.total_seconds()) // 60
    sign = "+" if minutes >= 0 else "-"
    minutes = abs(minutes)
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def _string_field(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string, got {value!r}")
    return value


@dataclass
class Resource:
    """The resource an event is about: either a bare path or a structured triple."""

    service: str = ""
    name: str = ""
    type: str = ""
    raw_path: str = ""

    @classmethod
    def from_json(cls, value: Any) -> Resource | None:
        """Build a resource from its JSON form, a string or an object."""
        if value is None:
            return None
        if isinstance(value, str):
            return cls(raw_path=value)
        if isinstance(value, Mapping):
            return cls(
                service=_string_field(value, "service"),
                name=_string_field(value, "name"),
                type=_string_field(value, "type"),
            )
        raise ValueError(f"resource must be a string or an object, got {value!r}")

    def to_json(self) -> str | dict[str, str]:
        """Return the JSON form: the raw path if set, else an object."""
        if self.raw_path:
            return self.raw_path
        return {"service": self.service, "name": self.name, "type": self.type}


@dataclass
class Metadata:
    """Context of a background event."""

    event_id: str = ""
    timestamp: datetime | None = None
    event_type: str = ""
    resource: Resource | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Metadata:
        """Read metadata fields from a decoded JSON object."""
        if not isinstance(payload, Mapping):
            raise ValueError(f"metadata must be an object, got {payload!r}")
        return cls(
            event_id=_string_field(payload, "eventId"),
            timestamp=parse_timestamp(payload.get("timestamp")),
            event_type=_string_field(payload, "eventType"),
            resource=Resource.from_json(payload.get("resource")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON object form of the metadata."""
        return {
            "eventId": self.event_id,
            "timestamp": format_timestamp(self.timestamp),
            "eventType": self.event_type,
            "resource": None if self.resource is None else self.resource.to_json(),
        }


@dataclass
class BackgroundEvent:
    """Incoming payload of a background function: data plus its context."""

    data: Any = None
    metadata: Metadata | None = None