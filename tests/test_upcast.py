import json

import pytest

from funcframework.events import EventConversionError
from funcframework.upcast import (
    background_to_cloud_event,
    convert_background_firebase_auth_metadata,
    firebase_auth_subject,
    split_resource,
)

EVENT_ID = "event-0001"
TIME = "2021-03-04T05:06:07.123Z"
TOPIC = "projects/demo-project/topics/demo-topic"
PUBSUB_TYPE = "type.googleapis.com/google.pubsub.v1.PubsubMessage"
DB_RESOURCE = "projects/_/instances/demo-instance/refs/items/abc"


def _background(event_type, resource, data, **extra):
    return json.dumps(
        {
            "eventId": EVENT_ID,
            "timestamp": TIME,
            "eventType": event_type,
            "resource": resource,
            "data": data,
            **extra,
        }
    )


def _cloud_event(ce_type, source, data, subject=None):
    event = {
        "specversion": "1.0",
        "id": EVENT_ID,
        "time": TIME,
        "type": ce_type,
        "source": source,
        "datacontenttype": "application/json",
        "data": data,
    }
    if subject is not None:
        event["subject"] = subject
    return event


def _auth_data(created_key, sign_in_key):
    return {
        "email": "user@example.com",
        "metadata": {created_key: "2021-01-01T00:00:00Z", sign_in_key: "2021-02-01T00:00:00Z"},
        "providerData": [{"email": "user@example.com", "providerId": "google.com", "uid": "user@example.com"}],
        "uid": "uid-0001",
    }


PUBSUB_CE = _cloud_event(
    "google.cloud.pubsub.topic.v1.messagePublished",
    f"//pubsub.googleapis.com/{TOPIC}",
    {"message": {"data": "10", "messageId": EVENT_ID, "publishTime": TIME}},
)

PUBSUB_NO_CONTEXT = _background("providers/cloud.pubsub/eventTypes/topic.publish", TOPIC, {"data": "10"})

PUBSUB_WITH_CONTEXT = json.dumps(
    {
        "context": {
            "eventId": EVENT_ID,
            "timestamp": TIME,
            "eventType": "google.pubsub.topic.publish",
            "resource": {"service": "pubsub.googleapis.com", "name": TOPIC, "type": PUBSUB_TYPE},
        },
        "data": {"data": "10"},
    }
)

AUTH_BG = _background(
    "providers/firebase.auth/eventTypes/user.create",
    "projects/demo-project",
    _auth_data("createdAt", "lastSignedInAt"),
    notSupported={},
)

AUTH_CE = _cloud_event(
    "google.firebase.auth.user.v1.created",
    "//firebaseauth.googleapis.com/projects/demo-project",
    _auth_data("createTime", "lastSignInTime"),
    subject="users/uid-0001",
)

DB_DATA_IO = {"data": None, "delta": {"child": "value"}}
DB_DATA_LOCAL = {"data": {"child": "value"}, "delta": {"child": "changed"}}


def _db_body(domain, data):
    return _background(
        "providers/google.firebase.database/eventTypes/ref.write",
        DB_RESOURCE,
        data,
        domain=domain,
        params={"child": "abc"},
        auth={"admin": True},
    )


def _db_ce(location, data):
    return _cloud_event(
        "google.firebase.database.ref.v1.written",
        f"//firebasedatabase.googleapis.com/projects/_/locations/{location}/instances/demo-instance",
        data,
        subject="refs/items/abc",
    )


@pytest.mark.parametrize(
    "body, want",
    [
        (PUBSUB_NO_CONTEXT, PUBSUB_CE),
        (PUBSUB_WITH_CONTEXT, PUBSUB_CE),
        (AUTH_BG, AUTH_CE),
        (_db_body("firebaseio.com", DB_DATA_IO), _db_ce("us-central1", DB_DATA_IO)),
        (_db_body("europe-west1.firebasedatabase.app", DB_DATA_LOCAL), _db_ce("europe-west1", DB_DATA_LOCAL)),
    ],
    ids=["pubsub-no-context", "pubsub-context", "firebase-auth", "firebase-db-io", "firebase-db-local"],
)
def test_background_to_cloud_event(body, want):
    got = background_to_cloud_event(body.encode(), "example.com")
    assert json.loads(got) == want


def test_background_to_cloud_event_has_no_trailing_newline():
    got = background_to_cloud_event(PUBSUB_NO_CONTEXT)
    assert not got.endswith(b"\n")


def test_storage_event_gets_subject():
    body = json.dumps(
        {
            "context": {
                "eventId": "evt-1",
                "timestamp": "2021-05-06T07:08:09Z",
                "eventType": "google.storage.object.finalize",
                "resource": {
                    "service": "storage.googleapis.com",
                    "name": "projects/_/buckets/demo-bucket/objects/dir/file.txt",
                    "type": "storage#object",
                },
            },
            "data": {"bucket": "demo-bucket"},
        }
    )
    got = json.loads(background_to_cloud_event(body))
    assert got["source"] == "//storage.googleapis.com/projects/_/buckets/demo-bucket"
    assert got["subject"] == "objects/dir/file.txt"
    assert got["type"] == "google.cloud.storage.object.v1.finalized"


def test_not_a_background_event():
    with pytest.raises(EventConversionError, match="unable to extract background event"):
        background_to_cloud_event(b'{"random": "x"}')


def test_unparseable_body():
    with pytest.raises(EventConversionError, match="parsing background event body"):
        background_to_cloud_event(b"{bad json")


def test_unknown_event_type():
    body = json.dumps({"eventId": "1", "eventType": "unknown.type", "resource": "r", "data": {}})
    with pytest.raises(EventConversionError, match="event type for unknown.type"):
        background_to_cloud_event(body)


def test_invalid_firebase_db_domain():
    with pytest.raises(EventConversionError, match="invalid"):
        background_to_cloud_event(_db_body("nodots", DB_DATA_IO))


def test_resource_mismatch_is_error():
    body = json.dumps(
        {
            "eventId": "1",
            "eventType": "google.storage.object.finalize",
            "resource": "projects/_/buckets/demo-bucket/",
            "data": {},
        }
    )
    with pytest.raises(EventConversionError, match="resource regexp did not match"):
        background_to_cloud_event(body)


def test_pubsub_data_must_be_object():
    body = json.dumps({"eventId": "1", "eventType": "google.pubsub.topic.publish", "resource": "t", "data": "x"})
    with pytest.raises(EventConversionError, match='invalid "data" field'):
        background_to_cloud_event(body)


@pytest.mark.parametrize(
    "service, resource, want",
    [
        ("firebaseauth.googleapis.com", "projects/p1", ("projects/p1", "")),
        ("firebase.googleapis.com", "projects/p1/events/e1", ("projects/p1", "events/e1")),
        ("firebasedatabase.googleapis.com", "projects/_/instances/i1/refs/a/b", ("instances/i1", "refs/a/b")),
        (
            "firestore.googleapis.com",
            "projects/p1/databases/(default)/documents/a/b",
            ("projects/p1/databases/(default)", "documents/a/b"),
        ),
        ("pubsub.googleapis.com", "projects/p1/topics/t1", ("projects/p1/topics/t1", "")),
        ("storage.googleapis.com", "projects/_/buckets/b1/objects/a/b", ("projects/_/buckets/b1", "objects/a/b")),
        ("not.a.valid.service", "projects/p1/stuff/thing/a/b", ("projects/p1/stuff/thing/a/b", "")),
    ],
)
def test_split_resource(service, resource, want):
    assert split_resource(service, resource) == want


@pytest.mark.parametrize("resource", ["projects/p1/stuff/thing/a/b", "projects/_/buckets/b1/"])
def test_split_resource_failures(resource):
    with pytest.raises(EventConversionError):
        split_resource("storage.googleapis.com", resource)


def test_convert_firebase_auth_metadata_in_place():
    data = {"metadata": {"createdAt": "a", "lastSignedInAt": "b", "other": "c"}}
    convert_background_firebase_auth_metadata(data)
    assert data == {"metadata": {"createTime": "a", "lastSignInTime": "b", "other": "c"}}


def test_convert_firebase_auth_metadata_ignores_non_maps():
    data = {"metadata": "plain"}
    convert_background_firebase_auth_metadata(data)
    assert data == {"metadata": "plain"}


def test_firebase_auth_subject():
    assert firebase_auth_subject({"uid": "abc"}) == "users/abc"


@pytest.mark.parametrize("data", [{"email": "user@example.com"}, ["uid"]])
def test_firebase_auth_subject_errors(data):
    with pytest.raises(EventConversionError):
        firebase_auth_subject(data)