import pytest

from funcframework.fftypes import Resource, parse_timestamp
from funcframework.pubsub import (
    LegacyPushSubscriptionEvent,
    PubsubMessage,
    TopicExtractionError,
    extract_topic_from_request_path,
)


@pytest.mark.parametrize(
    "path, want",
    [
        ("http://localhost:8080/projects/abc/topics/topic", "projects/abc/topics/topic"),
        ("projects/abc/topics/topic", "projects/abc/topics/topic"),
        ("http://localhost:8080/projects/abc/topics/topic/extra/suffix/", "projects/abc/topics/topic"),
        ("http://localhost:8080/extra/prefix/projects/abc/topics/topic", "projects/abc/topics/topic"),
        (
            "https://fake-tp.appspot.com/_ah/push-handlers/pubsub/projects/abc/topics/topic",
            "projects/abc/topics/topic",
        ),
        (
            "https://fake-tp.appspot.com/_ah/push-handlers/pubsub/projects/abc/topics/topic?pubsub_trigger=true",
            "projects/abc/topics/topic",
        ),
    ],
    ids=["localhost", "just topic", "extra suffix", "extra prefix", "from pubsub", "with parameters"],
)
def test_extract_topic_from_request_path(path, want):
    assert extract_topic_from_request_path(path) == want


@pytest.mark.parametrize(
    "path",
    [
        "https://fake-tp.appspot.com/_ah/push-handlers/pubsub/projects//topics/topic",
        "https://fake-tp.appspot.com/_ah/push-handlers/pubsub/projects/abc/topics/",
        "fail/to/parse/this",
        "",
    ],
    ids=["missing project", "missing topic", "random", "empty string"],
)
def test_extract_topic_failure(path):
    with pytest.raises(TopicExtractionError):
        extract_topic_from_request_path(path)


def test_extract_topic_error_strips_newlines():
    with pytest.raises(TopicExtractionError) as info:
        extract_topic_from_request_path("bad\npath\r")
    assert "\n" not in str(info.value)
    assert "badpath" in str(info.value)


FULL_BODY = {
    "subscription": "projects/FOO/subscriptions/BAR_SUB",
    "message": {"data": "eyJmb28iOiJiYXIifQ==", "messageId": "1", "attributes": {"test": "123"}},
}
NO_ATTRIBUTES_BODY = {
    "subscription": "projects/FOO/subscriptions/BAR_SUB",
    "message": {"data": "eyJmb28iOiJiYXIifQ==", "messageId": "1"},
}
TIMESTAMP_BODY = {
    "subscription": "projects/FOO/subscriptions/BAR_SUB",
    "message": {
        "data": "eyJmb28iOiJiYXIifQ==",
        "messageId": "1",
        "publishTime": "2020-05-18T12:13:19.209Z",
    },
}
MESSAGE_TYPE = "type.googleapis.com/google.pubusb.v1.PubsubMessage"


@pytest.mark.parametrize(
    "body, topic, want_attributes, want_timestamp",
    [
        (FULL_BODY, "projects/FOO/topics/BAR_TOPIC", {"test": "123"}, None),
        (FULL_BODY, "", {"test": "123"}, None),
        (NO_ATTRIBUTES_BODY, "", None, None),
        (TIMESTAMP_BODY, "", None, "2020-05-18T12:13:19.209Z"),
    ],
    ids=["legacy pubsub event", "missing topic", "no attributes", "has timestamp"],
)
def test_convert_legacy_event_to_background_event(body, topic, want_attributes, want_timestamp):
    event = LegacyPushSubscriptionEvent.from_dict(body)
    got = event.to_background_event(topic)

    assert got.metadata.event_id == "1"
    assert got.metadata.event_type == "google.pubsub.topic.publish"
    assert got.metadata.resource == Resource(
        name=topic, type=MESSAGE_TYPE, service="pubsub.googleapis.com"
    )
    assert got.data == {
        "@type": MESSAGE_TYPE,
        "data": b'{"foo":"bar"}',
        "attributes": want_attributes,
    }
    if want_timestamp is None:
        assert got.metadata.timestamp is not None
        assert got.metadata.timestamp.tzinfo is not None
    else:
        assert got.metadata.timestamp == parse_timestamp(want_timestamp)


def test_from_dict_reads_subscription_and_message():
    event = LegacyPushSubscriptionEvent.from_dict(FULL_BODY)
    assert event.subscription == "projects/FOO/subscriptions/BAR_SUB"
    assert event.message == PubsubMessage(id="1", data=b'{"foo":"bar"}', attributes={"test": "123"})


@pytest.mark.parametrize(
    "body",
    [
        {"message": {"data": "not base64!!"}},
        {"message": "text"},
        {"message": {"messageId": 5}},
        {"message": {"attributes": {"a": 1}}},
        "not an object",
    ],
)
def test_from_dict_rejects_malformed(body):
    with pytest.raises(ValueError):
        LegacyPushSubscriptionEvent.from_dict(body)