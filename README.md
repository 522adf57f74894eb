# funcframework

Building blocks for serving user functions that respond to HTTP requests,
background events and CloudEvents. The package keeps a registry of functions,
converts between the background-event and CloudEvent formats used by Google
Cloud event sources, reads Pub/Sub push messages and CloudEvent requests, and
writes structured per-request logs. It has no dependencies outside the
standard library.

## Installation

```
pip install funcframework
```

## Registering functions

`funcframework.registry.Registry` holds functions of four kinds: HTTP,
CloudEvent, background event and typed. Each is registered by name, by path,
or both:

```python
from funcframework.registry import Registry

registry = Registry()
registry.register_http(hello, name="hello")           # served path "/hello"
registry.register_event(on_event, path="/events")     # registered by path only
registry.register_cloud_event(on_ce, name="ce", path="/ce")
```

- A function with a name and no path gets the path `/<name>`.
- Registering with neither a name nor a path, or with a name that is already
  taken, raises `RegistrationError`.
- `get_registered_function(name)` returns the function or `None`;
  `get_all_functions()` lists functions registered without a name first, then
  the named ones; `get_last_function_without_name()` returns the most recent
  one registered by path only; `reset()` forgets everything.

`default_registry()` returns a process-wide registry, and the
`funcframework.functions` module registers into it by name:

```python
from funcframework import functions

functions.http("hello", hello)
functions.cloud_event("on_upload", on_upload)
functions.typed("echo", echo)
```

Each returns the function it was given, and raises `RegistrationError`
(prefixed `failure to register function:`) when registration fails.

## Background events

`funcframework.events.get_background_event(body, path)` reads a request body
and returns `(metadata, data)`:

- a body with `data` and `context` gives the parsed context as a
  `funcframework.fftypes.Metadata`;
- a body with `data` and top-level `eventId`, `timestamp`, `eventType` and
  `resource` gives metadata read from those fields;
- a legacy Pub/Sub push body (`subscription` and `message`) is turned into a
  background event, with the topic taken from `path`;
- a valid JSON body that is none of these gives `(None, None)`;
- a body that cannot be parsed raises `EventConversionError`.

`validate_event_function(fn)` raises `TypeError` unless `fn` takes exactly two
positional parameters, the first able to receive the event `Metadata`.
`encode_data(data)` encodes a value as one line of JSON without HTML escaping,
with bytes as base64 and timestamps in RFC 3339.

`funcframework.fftypes` defines `Resource`, `Metadata` and `BackgroundEvent`,
along with `parse_timestamp` and `format_timestamp`.

## Event conversion

From background event to structured CloudEvent:

```python
from funcframework.upcast import background_to_cloud_event

ce_body = background_to_cloud_event(body, path)   # JSON bytes
```

The event type and service are mapped to their CloudEvent equivalents, the
resource is split into `source` and `subject` (`split_resource`), Pub/Sub data
is wrapped in `message` with `messageId` and `publishTime`, Firebase Auth
metadata fields are renamed (`createdAt` → `createTime`, `lastSignedInAt` →
`lastSignInTime`) and the subject becomes `users/<uid>`, and Firebase Realtime
Database sources gain a location read from the `domain` field. Failures raise
`EventConversionError`.

From binary CloudEvent to background event:

```python
from funcframework.downcast import (
    cloud_event_to_background,
    should_convert_cloud_event_to_background,
)

if should_convert_cloud_event_to_background(headers):
    be_body = cloud_event_to_background(headers, body)
```

`should_convert_cloud_event_to_background` is true when `ce-type` names a known
Google Cloud event type and `ce-source`, `ce-specversion` and `ce-id` are all
present.

## CloudEvents over HTTP

`funcframework.cloudevent.from_http(headers, body)` reads a `CloudEvent` from a
request in structured mode (`Content-Type: application/cloudevents+json`) or
binary mode (`ce-*` headers). Missing required attributes, an unsupported
spec version or a batched request raise `CloudEventError`.
`CloudEvent.to_dict()` returns the structured JSON form.

## Pub/Sub push messages

`funcframework.pubsub.extract_topic_from_request_path(path)` returns the
`projects/<project>/topics/<topic>` part of a push path, or raises
`TopicExtractionError`. `LegacyPushSubscriptionEvent.from_dict(payload)` reads
a push body, decoding the base64 message data, and `to_background_event(topic)`
turns it into a `BackgroundEvent`; the current time is used when the message
has no publish time.

## Structured logging

`funcframework.logwriter.logging_ids_from_headers(headers)` takes the trace and
span IDs from `X-Cloud-Trace-Context` and the execution ID from
`Function-Execution-Id`, generating one when it is absent. Bind them for the
handling of a request:

```python
from funcframework import logwriter

with logwriter.bind_logging_ids(logwriter.logging_ids_from_headers(headers)):
    with logwriter.log_writer() as log:
        log.write("hello world!\n")
```

Inside the block `trace_id_from_context()`, `span_id_from_context()` and
`execution_id_from_context()` return the bound values. `log_writer()` returns a
`StructuredLogWriter` on standard error, which writes one JSON entry for every
complete line:

```json
{"message":"hello world!","logging.googleapis.com/trace":"b","logging.googleapis.com/spanId":"a","logging.googleapis.com/labels":{"execution_id":"c"}}
```

Closing the writer emits any final line left without a newline. Outside a
bound block, `log_writer()` returns standard error itself.

## What this package does not do

The package does not include an HTTP server or a command to run one. It does
not route requests to registered functions, call them, turn their errors into
responses, or apply request deadlines: an application that serves functions
uses the registry, conversions and logging helpers above to do that itself.