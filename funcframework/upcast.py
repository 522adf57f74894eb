"""Conversion of background event requests into structured CloudEvents."""

from __future__ import annotations

import json
import re
from typing import Any

from funcframework.events import (
    CE_SPEC_VERSION,
    FIREBASE_AUTH_CE_SERVICE,
    FIREBASE_CE_SERVICE,
    FIREBASE_DB_CE_SERVICE,
    FIRESTORE_CE_SERVICE,
    PUBSUB_CE_SERVICE,
    STORAGE_CE_SERVICE,
    EventConversionError,
    _decode_text,
    encode_data,
    get_background_event,
)
from funcframework.fftypes import Resource, format_timestamp

TYPE_BACKGROUND_TO_CLOUD_EVENT = {
    "google.pubsub.topic.publish": "google.cloud.pubsub.topic.v1.messagePublished",
    "providers/cloud.pubsub/eventTypes/topic.publish": "google.cloud.pubsub.topic.v1.messagePublished",
    "google.storage.object.finalize": "google.cloud.storage.object.v1.finalized",
    "google.storage.object.delete": "google.cloud.storage.object.v1.deleted",
    "google.storage.object.archive": "google.cloud.storage.object.v1.archived",
    "google.storage.object.metadataUpdate": "google.cloud.storage.object.v1.metadataUpdated",
    "providers/cloud.firestore/eventTypes/document.write": "google.cloud.firestore.document.v1.written",
    "providers/cloud.firestore/eventTypes/document.create": "google.cloud.firestore.document.v1.created",
    "providers/cloud.firestore/eventTypes/document.update": "google.cloud.firestore.document.v1.updated",
    "providers/cloud.firestore/eventTypes/document.delete": "google.cloud.firestore.document.v1.deleted",
    "providers/firebase.auth/eventTypes/user.create": "google.firebase.auth.user.v1.created",
    "providers/firebase.auth/eventTypes/user.delete": "google.firebase.auth.user.v1.deleted",
    "providers/google.firebase.analytics/eventTypes/event.log": "google.firebase.analytics.log.v1.written",
    "providers/google.firebase.database/eventTypes/ref.create": "google.firebase.database.ref.v1.created",
    "providers/google.firebase.database/eventTypes/ref.write": "google.firebase.database.ref.v1.written",
    "providers/google.firebase.database/eventTypes/ref.update": "google.firebase.database.ref.v1.updated",
    "providers/google.firebase.database/eventTypes/ref.delete": "google.firebase.database.ref.v1.deleted",
    "providers/cloud.storage/eventTypes/object.change": "google.cloud.storage.object.v1.finalized",
}

SERVICE_BACKGROUND_TO_CLOUD_EVENT = {
    "providers/cloud.firestore/": FIRESTORE_CE_SERVICE,
    "providers/google.firebase.analytics/": FIREBASE_CE_SERVICE,
    "providers/firebase.auth/": FIREBASE_AUTH_CE_SERVICE,
    "providers/google.firebase.database/": FIREBASE_DB_CE_SERVICE,
    "providers/cloud.pubsub/": PUBSUB_CE_SERVICE,
    "providers/cloud.storage/": STORAGE_CE_SERVICE,
    "google.pubsub": PUBSUB_CE_SERVICE,
    "google.storage": STORAGE_CE_SERVICE,
}

# Each pattern captures the CloudEvent resource, then the subject.
_SERVICE_RESOURCE_RE = {
    FIREBASE_CE_SERVICE: re.compile(r"(projects/[^/]+)/(events/[^/]+)"),
    FIREBASE_DB_CE_SERVICE: re.compile(r"projects/_/(instances/[^/]+)/(refs/.+)"),
    FIRESTORE_CE_SERVICE: re.compile(r"(projects/[^/]+/databases/\(default\))/(documents/.+)"),
    STORAGE_CE_SERVICE: re.compile(r"(projects/_/buckets/[^/]+)/(objects/.+)"),
}

_FIREBASE_AUTH_METADATA_FIELDS = {
    "createdAt": "createTime",
    "lastSignedInAt": "lastSignInTime",
}


def split_resource(service: str, resource: str) -> tuple[str, str]:
    """Split a background resource path into CloudEvent resource and subject.

    Services without a split pattern return the resource unchanged and an
    empty subject.
    """
    pattern = _SERVICE_RESOURCE_RE.get(service)
    if pattern is None:
        return resource, ""
    match = pattern.fullmatch(resource)
    if match is None:
        raise EventConversionError("resource regexp did not match")
    return match.group(1), match.group(2)


def convert_background_firebase_auth_metadata(data: Any) -> None:
    """Rename Firebase Auth metadata fields to their CloudEvent names, in place."""
    if not isinstance(data, dict):
        return
    metadata = data.get("metadata")
    if not isinstance(metadata, dict):
        return
    for old, new in _FIREBASE_AUTH_METADATA_FIELDS.items():
        if old in metadata:
            metadata[new] = metadata.pop(old)


def firebase_auth_subject(data: Any) -> str:
    """Return the CloudEvent subject ``users/<uid>`` for Firebase Auth data."""
    if not isinstance(data, dict):
        raise EventConversionError("data is not a map from string to interface")
    if "uid" not in data:
        raise EventConversionError('data does not contain field "uid"')
    uid = data["uid"]
    return f"users/{uid if isinstance(uid, str) else json.dumps(uid)}"


def _service_for_event_type(event_type: str) -> str:
    for prefix, service in SERVICE_BACKGROUND_TO_CLOUD_EVENT.items():
        if event_type.startswith(prefix):
            return service
    raise EventConversionError(f"unable to find CloudEvent equivalent service for {event_type}")


def _firebase_db_location(text: str) -> str:
    payload = json.loads(text)
    domain = payload.get("domain") if isinstance(payload, dict) else None
    if domain is not None and not isinstance(domain, str):
        raise EventConversionError(
            f'unable to unmarshal "{FIREBASE_DB_CE_SERVICE}" domain from event payload {text!r}'
        )
    domain = domain or ""
    if domain == "firebaseio.com":
        return "us-central1"
    parts = domain.split(".", 1)
    if len(parts) != 2:
        raise EventConversionError(f'invalid "{FIREBASE_DB_CE_SERVICE}" domain: "{domain}"')
    return parts[0]


def background_to_cloud_event(body: bytes | str, path: str = "") -> bytes:
    """Convert a background event body into a structured CloudEvent JSON body.

    The result is meant to be sent with the ``application/cloudevents+json``
    content type.
    """
    text = _decode_text(body)
    try:
        metadata, data = get_background_event(body, path)
    except EventConversionError as exc:
        raise EventConversionError(f"parsing background event body {text}: {exc}") from exc
    if metadata is None or data is None:
        raise EventConversionError(f"unable to extract background event from {text}")

    ce_type = TYPE_BACKGROUND_TO_CLOUD_EVENT.get(metadata.event_type)
    if ce_type is None:
        raise EventConversionError(
            f"unable to find CloudEvent equivalent event type for {metadata.event_type}"
        )

    resource = metadata.resource or Resource()
    service = resource.service or _service_for_event_type(metadata.event_type)
    resource_name, subject = split_resource(service, resource.name or resource.raw_path)

    timestamp = format_timestamp(metadata.timestamp)
    event: dict[str, Any] = {
        "id": metadata.event_id,
        "time": timestamp,
        "specversion": CE_SPEC_VERSION,
        "datacontenttype": "application/json",
        "type": ce_type,
        "source": f"//{service}/{resource_name}",
        "data": data,
    }
    if subject:
        event["subject"] = subject

    if service == PUBSUB_CE_SERVICE:
        if not isinstance(data, dict):
            raise EventConversionError(f'invalid "data" field in event payload, "data": {data!r}')
        data["publishTime"] = timestamp
        data["messageId"] = metadata.event_id
        event["data"] = {"message": data}
    elif service == FIREBASE_AUTH_CE_SERVICE:
        convert_background_firebase_auth_metadata(data)
        try:
            auth_subject = firebase_auth_subject(data)
        except EventConversionError:
            auth_subject = ""
        if auth_subject:
            event["subject"] = auth_subject
    elif service == FIREBASE_DB_CE_SERVICE:
        location = _firebase_db_location(text)
        event["source"] = f"//{service}/projects/_/locations/{location}/{resource_name}"

    try:
        return encode_data(event).rstrip(b"\n")
    except EventConversionError as exc:
        raise EventConversionError(f"unable to marshal CloudEvent {event!r}: {exc}") from exc