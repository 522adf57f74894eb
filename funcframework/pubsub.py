"""Legacy Pub/Sub push subscription events and topic extraction."""

from __future__ import annotations

import base64
import binascii
import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from funcframework.fftypes import BackgroundEvent, Metadata, Resource, parse_timestamp

PUBSUB_EVENT_TYPE = "google.pubsub.topic.publish"
PUBSUB_MESSAGE_TYPE = "type.googleapis.com/google.pubusb.v1.PubsubMessage"
PUBSUB_SERVICE = "pubsub.googleapis.com"

_TOPIC_RE = re.compile(r"(projects/[^/?]+/topics/[^/?]+)/*")


class TopicExtractionError(ValueError):
    """Raised when a request path holds no Pub/Sub topic."""


@dataclass
class PubsubMessage:
    """A Pub/Sub message as delivered to push endpoints."""

    id: str = ""
    data: bytes = b""
    attributes: dict[str, str] | None = None
    publish_time: datetime | None = None


def _str(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string, got {value!r}")
    return value


def _parse_message(payload: Any) -> PubsubMessage:
    if payload is None:
        return PubsubMessage()
    if not isinstance(payload, Mapping):
        raise ValueError(f"message must be an object, got {payload!r}")
    raw = _str(payload, "data")
    try:
        data = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"message data is not valid base64: {raw!r}") from exc
    attributes = payload.get("attributes")
    if attributes is not None:
        if not isinstance(attributes, Mapping) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in attributes.items()
        ):
            raise ValueError(f"message attributes must map strings to strings, got {attributes!r}")
        attributes = dict(attributes)
    return PubsubMessage(
        id=_str(payload, "messageId"),
        data=data,
        attributes=attributes,
        publish_time=parse_timestamp(payload.get("publishTime")),
    )


@dataclass
class LegacyPushSubscriptionEvent:
    """Payload of a legacy Pub/Sub push subscription trigger."""

    subscription: str = ""
    message: PubsubMessage = field(default_factory=PubsubMessage)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> LegacyPushSubscriptionEvent:
        """Read the event from a decoded JSON object."""
        if not isinstance(payload, Mapping):
            raise ValueError(f"event must be an object, got {payload!r}")
        return cls(
            subscription=_str(payload, "subscription"),
            message=_parse_message(payload.get("message")),
        )

    def to_background_event(self, topic: str) -> BackgroundEvent:
        """Convert to the standard background event shape."""
        timestamp = self.message.publish_time or datetime.now(timezone.utc)
        return BackgroundEvent(
            metadata=Metadata(
                event_id=self.message.id,
                timestamp=timestamp,
                event_type=PUBSUB_EVENT_TYPE,
                resource=Resource(name=topic, type=PUBSUB_MESSAGE_TYPE, service=PUBSUB_SERVICE),
            ),
            data={
                "@type": PUBSUB_MESSAGE_TYPE,
                "data": self.message.data,
                "attributes": self.message.attributes,
            },
        )


def extract_topic_from_request_path(path: str) -> str:
    """Return the ``projects/P/topics/T`` part of a request path."""
    match = _TOPIC_RE.search(path)
    if match is None:
        escaped = path.replace("\n", "").replace("\r", "")
        raise TopicExtractionError(
            "failed to extract Pub/Sub topic name from the URL request path: "
            f"{json.dumps(escaped)}, configure your subscription's push endpoint to use "
            "the following path pattern: 'projects/PROJECT_NAME/topics/TOPIC_NAME'"
        )
    return match.group(1)