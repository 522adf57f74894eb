"""Conversion of binary CloudEvent requests into background event bodies."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any

from funcframework.events import (
    FIREBASE_AUTH_CE_SERVICE,
    FIREBASE_DB_CE_SERVICE,
    PUBSUB_CE_SERVICE,
    PUBSUB_MESSAGE_TYPE,
    STORAGE_CE_SERVICE,
    EventConversionError,
)

TYPE_CLOUD_TO_BACKGROUND_EVENT = {
    "google.cloud.pubsub.topic.v1.messagePublished": "google.pubsub.topic.publish",
    "google.cloud.storage.object.v1.finalized": "google.storage.object.finalize",
    "google.cloud.storage.object.v1.deleted": "google.storage.object.delete",
    "google.cloud.storage.object.v1.archived": "google.storage.object.archive",
    "google.cloud.storage.object.v1.metadataUpdated": "google.storage.object.metadataUpdate",
    "google.cloud.firestore.document.v1.written": "providers/cloud.firestore/eventTypes/document.write",
    "google.cloud.firestore.document.v1.created": "providers/cloud.firestore/eventTypes/document.create",
    "google.cloud.firestore.document.v1.updated": "providers/cloud.firestore/eventTypes/document.update",
    "google.cloud.firestore.document.v1.deleted": "providers/cloud.firestore/eventTypes/document.delete",
    "google.firebase.auth.user.v1.created": "providers/firebase.auth/eventTypes/user.create",
    "google.firebase.auth.user.v1.deleted": "providers/firebase.auth/eventTypes/user.delete",
    "google.firebase.analytics.log.v1.written": "providers/google.firebase.analytics/eventTypes/event.log",
    "google.firebase.database.ref.v1.created": "providers/google.firebase.database/eventTypes/ref.create",
    "google.firebase.database.ref.v1.written": "providers/google.firebase.database/eventTypes/ref.write",
    "google.firebase.database.ref.v1.updated": "providers/google.firebase.database/eventTypes/ref.update",
    "google.firebase.database.ref.v1.deleted": "providers/google.firebase.database/eventTypes/ref.delete",
}

# "//pubsub.googleapis.com/projects/p/topics/t" -> service, resource name
_SOURCE_RE = re.compile(r"//([^/]+)/(.+)")
_LOCATIONS_RE = re.compile(r"/locations/[^/]+")

_AUTH_METADATA_FIELDS = {
    "createTime": "createdAt",
    "lastSignInTime": "lastSignedInAt",
}


def _header(headers: Mapping[str, str], name: str) -> str:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value or ""
    return ""


def should_convert_cloud_event_to_background(headers: Mapping[str, str]) -> bool:
    """Tell whether headers describe a binary CloudEvent with a background equivalent."""
    return _header(headers, "ce-type") in TYPE_CLOUD_TO_BACKGROUND_EVENT and all(
        _header(headers, name) for name in ("ce-source", "ce-specversion", "ce-id")
    )


def cloud_event_to_background(headers: Mapping[str, str], body: bytes | str) -> bytes:
    """Build a background event JSON body from a binary CloudEvent request."""
    text = bytes(body).decode("utf-8", errors="replace") if isinstance(body, (bytes, bytearray)) else body
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise EventConversionError(f"unable to unmarshal CloudEvent data: {text}, error: {exc}") from exc
    if data is not None and not isinstance(data, dict):
        raise EventConversionError(
            f"unable to unmarshal CloudEvent data: {text}, error: data is not a JSON object"
        )

    ce_type = _header(headers, "ce-type")
    source = _header(headers, "ce-source")
    subject = _header(headers, "ce-subject")

    event_type = TYPE_CLOUD_TO_BACKGROUND_EVENT.get(ce_type)
    if event_type is None:
        raise EventConversionError(f"incoming event has unsupported event type: {json.dumps(ce_type)}")

    match = _SOURCE_RE.search(source)
    if match is None:
        raise EventConversionError(
            f"unable to parse CloudEvent source into resource service and name: {json.dumps(source)}"
        )
    service, name = match.group(1), match.group(2)
    resource: Any = f"{name}/{subject}"

    if service == PUBSUB_CE_SERVICE:
        resource = {"name": name, "service": service, "type": PUBSUB_MESSAGE_TYPE}
        if data is not None:
            message = data.get("message")
            if isinstance(message, dict):
                data = message
            data.pop("messageId", None)
            data.pop("publishTime", None)
    elif service == FIREBASE_AUTH_CE_SERVICE:
        resource = name
        metadata = data.get("metadata") if data is not None else None
        if isinstance(metadata, dict):
            for new, old in _AUTH_METADATA_FIELDS.items():
                if new in metadata:
                    metadata[old] = metadata.pop(new)
    elif service == FIREBASE_DB_CE_SERVICE:
        resource = _LOCATIONS_RE.sub("", resource)
    elif service == STORAGE_CE_SERVICE:
        kind = data.get("kind") if data is not None else None
        resource = {"name": resource, "service": service, "type": kind}

    event = {
        "data": data,
        "context": {
            "eventId": _header(headers, "ce-id"),
            "timestamp": _header(headers, "ce-time"),
            "eventType": event_type,
            "resource": resource,
        },
    }
    try:
        return json.dumps(event, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise EventConversionError(f"unable to marshal Background event {event!r}: {exc}") from exc