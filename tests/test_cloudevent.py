import json

import pytest

from funcframework.cloudevent import CloudEvent, CloudEventError, from_http

STRUCTURED = {
    "specversion": "1.0",
    "type": "com.example.order.created",
    "source": "https://example.com/orders",
    "subject": "42",
    "id": "order-event-7",
    "time": "2021-06-01T08:00:00Z",
    "exampleext": "yes",
    "datacontenttype": "application/xml",
    "data": '<order id="42"/>',
}

BINARY_HEADERS = {
    "ce-specversion": "1.0",
    "ce-type": "com.example.order.created",
    "ce-source": "https://example.com/orders",
    "ce-subject": "42",
    "ce-id": "order-event-7",
    "ce-time": "2021-06-01T08:00:00Z",
    "ce-exampleext": "yes",
    "Content-Type": "application/xml",
}


def _structured_event():
    return from_http(
        {"Content-Type": "application/cloudevents+json"}, json.dumps(STRUCTURED).encode()
    )


def test_structured_event_attributes():
    event = _structured_event()
    assert event.id == "order-event-7"
    assert event.type == "com.example.order.created"
    assert event.subject == "42"
    assert event.extensions == {"exampleext": "yes"}
    assert event.data == '<order id="42"/>'


def test_binary_matches_structured():
    binary = from_http(BINARY_HEADERS, b'<order id="42"/>')
    assert binary == _structured_event()


def test_to_dict_round_trip():
    event = _structured_event()
    assert event.to_dict() == STRUCTURED
    again = from_http({"content-type": "application/cloudevents+json"}, json.dumps(event.to_dict()))
    assert again == event


def test_binary_json_data_is_decoded():
    headers = {**BINARY_HEADERS, "Content-Type": "application/json"}
    event = from_http(headers, b'{"a": [1, 2]}')
    assert event.data == {"a": [1, 2]}


def test_bytes_data_round_trips_through_base64():
    event = CloudEvent(id="1", source="//src", type="t", data=b"\xff\x00")
    encoded = event.to_dict()
    assert "data" not in encoded
    again = from_http({"Content-Type": "application/cloudevents+json"}, json.dumps(encoded))
    assert again.data == b"\xff\x00"


def test_missing_id_raises():
    payload = {k: v for k, v in STRUCTURED.items() if k != "id"}
    with pytest.raises(CloudEventError, match="id"):
        from_http({"Content-Type": "application/cloudevents+json"}, json.dumps(payload))


def test_invalid_structured_json_raises():
    with pytest.raises(CloudEventError):
        from_http({"Content-Type": "application/cloudevents+json"}, b"{bad")


def test_plain_request_is_not_a_cloud_event():
    with pytest.raises(CloudEventError):
        from_http({"Content-Type": "application/json"}, b"{}")


def test_unsupported_specversion_raises():
    headers = {**BINARY_HEADERS, "ce-specversion": "9.9"}
    with pytest.raises(CloudEventError, match="specversion"):
        from_http(headers, b"")


def test_bad_time_raises():
    headers = {**BINARY_HEADERS, "ce-time": "yesterday"}
    with pytest.raises(CloudEventError):
        from_http(headers, b"")