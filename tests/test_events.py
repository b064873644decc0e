"""
Tests for functionspine.events — CanonicalEvent and wire decoding.
"""

from __future__ import annotations

import json

import pytest

from functionspine import CanonicalEvent, UnrecognizedEventFormatError, decode_event


class TestCanonicalEvent:
    def test_defaults(self):
        event = CanonicalEvent(id="1", source="s", type="t")
        assert event.spec_version == "1.0"
        assert event.data is None
        assert dict(event.extensions) == {}

    @pytest.mark.parametrize("field", ["id", "source", "type"])
    def test_required_attribute_must_be_non_empty(self, field):
        attrs = {"id": "1", "source": "s", "type": "t", field: ""}
        with pytest.raises(ValueError):
            CanonicalEvent(**attrs)

    def test_spec_version_checked(self):
        with pytest.raises(ValueError):
            CanonicalEvent(id="1", source="s", type="t", spec_version="2.0")

    def test_extensions_are_read_only(self):
        event = CanonicalEvent(id="1", source="s", type="t", extensions={"a": 1})
        with pytest.raises(TypeError):
            event.extensions["b"] = 2

    def test_to_dict(self):
        event = CanonicalEvent(
            id="1",
            source="s",
            type="t",
            data_content_type="application/json",
            subject="sub",
            data={"x": 1},
            extensions={"traceparent": "tp"},
        )
        assert event.to_dict() == {
            "specversion": "1.0",
            "id": "1",
            "source": "s",
            "type": "t",
            "datacontenttype": "application/json",
            "subject": "sub",
            "traceparent": "tp",
            "data": {"x": 1},
        }

    def test_to_dict_binary_data(self):
        event = CanonicalEvent(id="1", source="s", type="t", data=b"hello")
        assert event.to_dict()["data_base64"] == "aGVsbG8="


class TestBinaryMode:
    def test_decode(self):
        headers = {
            "ce-specversion": "1.0",
            "ce-id": "b-1",
            "ce-source": "//example.com/src",
            "ce-type": "com.example.thing",
            "ce-subject": "things/1",
            "ce-time": "2024-01-01T00:00:00Z",
            "ce-traceparent": "00-abc",
            "content-type": "application/json",
        }
        event = decode_event(headers, b'{"a": 1}')
        assert event.id == "b-1"
        assert event.source == "//example.com/src"
        assert event.type == "com.example.thing"
        assert event.subject == "things/1"
        assert event.time == "2024-01-01T00:00:00Z"
        assert event.data_content_type == "application/json"
        assert event.data == {"a": 1}
        assert event.extensions["traceparent"] == "00-abc"

    def test_mixed_case_headers(self):
        headers = {
            "Ce-Specversion": "1.0",
            "Ce-Id": "b-2",
            "Ce-Source": "s",
            "Ce-Type": "t",
            "Content-Type": "text/plain",
        }
        event = decode_event(headers, b"hello")
        assert event.id == "b-2"
        assert event.data == "hello"

    def test_invalid_binary_event(self):
        headers = {"ce-specversion": "1.0", "ce-id": "1", "ce-type": "t"}
        with pytest.raises(UnrecognizedEventFormatError):
            decode_event(headers, b"")


class TestStructuredMode:
    def test_cloudevents_json(self, structured_cloud_event):
        event = decode_event(
            {"content-type": "application/cloudevents+json"},
            json.dumps(structured_cloud_event).encode(),
        )
        assert event.id == "evt-1"
        assert event.subject == "orders/42"
        assert event.data == {"order": 42}

    def test_plain_json_envelope(self, structured_cloud_event):
        event = decode_event({"content-type": "application/json"}, json.dumps(structured_cloud_event).encode())
        assert event.id == "evt-1"
        assert event.type == "com.example.order.created"

    def test_malformed_structured(self):
        with pytest.raises(UnrecognizedEventFormatError):
            decode_event({"content-type": "application/cloudevents+json"}, b"{not json")


class TestLegacyFallback:
    def test_legacy_event(self, storage_legacy_event):
        event = decode_event({"content-type": "application/json"}, json.dumps(storage_legacy_event).encode())
        assert event.type == "google.cloud.storage.object.v1.finalized"
        assert event.subject == "objects/folder/Test.cs"

    def test_pubsub_push_uses_path(self):
        body = json.dumps({"message": {"messageId": "m"}, "subscription": "projects/p/subscriptions/s"})
        event = decode_event({}, body.encode(), path="/projects/p/topics/t")
        assert event.source == "//pubsub.googleapis.com/projects/p/topics/t"

    @pytest.mark.parametrize("body", [b"", b"not json", b"[1, 2]", b'{"hello": "world"}'])
    def test_rejected(self, body):
        with pytest.raises(UnrecognizedEventFormatError):
            decode_event({"content-type": "application/json"}, body)
