"""
Tests for functionspine.legacy — payload detection and normalization.
"""

from __future__ import annotations

import uuid

import pytest

from functionspine import EventNormalizer, UnrecognizedEventFormatError
from functionspine.legacy import LEGACY_TYPE_TO_CANONICAL_TYPE


@pytest.fixture
def normalizer() -> EventNormalizer:
    return EventNormalizer()


class TestCanonicalPassThrough:
    def test_structured_event(self, normalizer, structured_cloud_event):
        event = normalizer.normalize(structured_cloud_event)
        assert event.id == "evt-1"
        assert event.source == "//example.com/orders"
        assert event.type == "com.example.order.created"
        assert event.spec_version == "1.0"
        assert event.data_content_type == "application/json"
        assert event.subject == "orders/42"
        assert event.data == {"order": 42}
        assert dict(event.extensions) == {}

    def test_camel_case_spec_version(self, normalizer):
        event = normalizer.normalize(
            {"specVersion": "0.3", "id": "1", "source": "s", "type": "t", "dataContentType": "text/plain"}
        )
        assert event.spec_version == "0.3"
        assert event.data_content_type == "text/plain"

    def test_extensions_collected(self, normalizer, structured_cloud_event):
        structured_cloud_event["traceparent"] = "00-abc-def-01"
        event = normalizer.normalize(structured_cloud_event)
        assert event.extensions == {"traceparent": "00-abc-def-01"}

    def test_data_base64_decoded(self, normalizer):
        event = normalizer.normalize(
            {"specversion": "1.0", "id": "1", "source": "s", "type": "t", "data_base64": "aGVsbG8="}
        )
        assert event.data == b"hello"

    def test_unsupported_spec_version(self, normalizer):
        with pytest.raises(UnrecognizedEventFormatError):
            normalizer.normalize({"specversion": "2.0", "id": "1", "source": "s", "type": "t"})

    def test_empty_required_attribute(self, normalizer):
        with pytest.raises(UnrecognizedEventFormatError):
            normalizer.normalize({"specversion": "1.0", "id": "", "source": "s", "type": "t"})

    def test_missing_optional_fields_are_absent(self, normalizer):
        event = normalizer.normalize({"specversion": "1.0", "id": "1", "source": "s", "type": "t"})
        assert event.subject is None
        assert event.time is None
        assert event.data is None
        assert dict(event.extensions) == {}


class TestNestedContextFamily:
    def test_storage_event(self, normalizer, storage_legacy_event):
        event = normalizer.normalize(storage_legacy_event)
        assert event.id == "1147091835525187"
        assert event.type == "google.cloud.storage.object.v1.finalized"
        assert event.source == "//storage.googleapis.com/projects/_/buckets/some-bucket"
        assert event.subject == "objects/folder/Test.cs"
        assert event.time == "2020-04-23T07:38:57.772Z"
        assert event.spec_version == "1.0"
        assert event.data is storage_legacy_event["data"]

    def test_pubsub_string_resource(self, normalizer):
        payload = {
            "context": {
                "eventId": "1",
                "eventType": "google.pubsub.topic.publish",
                "resource": "projects/my-project/topics/my-topic",
            },
            "data": {"data": "aGVsbG8="},
        }
        event = normalizer.normalize(payload)
        assert event.type == "google.cloud.pubsub.topic.v1.messagePublished"
        assert event.source == "//pubsub.googleapis.com/projects/my-project/topics/my-topic"
        assert event.subject is None
        assert event.data == {"data": "aGVsbG8="}

    def test_generated_id(self, normalizer):
        payload = {
            "context": {"eventType": "google.pubsub.topic.publish", "resource": "projects/p/topics/t"},
            "data": {},
        }
        event = normalizer.normalize(payload)
        uuid.UUID(event.id)

    def test_unmapped_type_fails(self, normalizer):
        payload = {"context": {"eventType": "com.example.unknown", "resource": "x"}, "data": {}}
        with pytest.raises(UnrecognizedEventFormatError, match="Unknown legacy event type"):
            normalizer.normalize(payload)


class TestFlatFamily:
    def test_firebase_auth(self, normalizer):
        payload = {
            "eventId": "auth-1",
            "eventType": "providers/firebase.auth/eventTypes/user.create",
            "resource": "projects/my-project",
            "timestamp": "2020-09-29T11:32:00.000Z",
            "data": {"uid": "UUpby3s4spZre6kHsgVSPetzQ8l2", "email": "test@nowhere.com"},
        }
        event = normalizer.normalize(payload)
        assert event.type == "google.firebase.auth.user.v1.created"
        assert event.source == "//firebaseauth.googleapis.com/projects/my-project"
        assert event.subject == "users/UUpby3s4spZre6kHsgVSPetzQ8l2"
        assert event.data == payload["data"]

    def test_firebase_database_with_domain(self, normalizer):
        payload = {
            "eventType": "providers/google.firebase.database/eventTypes/ref.write",
            "resource": "projects/_/instances/my-db/refs/users/alice",
            "domain": "europe-west1.firebasedatabase.app",
            "data": {"delta": {"x": 1}},
        }
        event = normalizer.normalize(payload)
        assert event.type == "google.firebase.database.ref.v1.written"
        assert event.source == (
            "//firebasedatabase.googleapis.com/projects/_/locations/europe-west1/instances/my-db"
        )
        assert event.subject == "refs/users/alice"

    def test_firebase_database_default_location(self, normalizer):
        payload = {
            "eventType": "providers/google.firebase.database/eventTypes/ref.create",
            "resource": "projects/_/instances/my-db/refs/a",
            "domain": "firebaseio.com",
            "data": None,
        }
        event = normalizer.normalize(payload)
        assert "/locations/us-central1/" in event.source

    def test_firestore_document(self, normalizer):
        payload = {
            "eventType": "providers/cloud.firestore/eventTypes/document.update",
            "resource": "projects/p/databases/(default)/documents/users/alice",
            "data": {"value": {}},
        }
        event = normalizer.normalize(payload)
        assert event.type == "google.cloud.firestore.document.v1.updated"
        assert event.source == "//firestore.googleapis.com/projects/p/databases/(default)"
        assert event.subject == "documents/users/alice"

    def test_missing_event_type(self, normalizer):
        with pytest.raises(UnrecognizedEventFormatError):
            normalizer.normalize({"data": {}, "resource": "projects/p"})


class TestPubSubPushFamily:
    def test_topic_from_path(self, normalizer):
        payload = {
            "message": {"data": "aGVsbG8=", "messageId": "m-1", "publishTime": "2021-01-01T00:00:00Z"},
            "subscription": "projects/p/subscriptions/s",
        }
        event = normalizer.normalize(payload, path="/projects/p/topics/t")
        assert event.id == "m-1"
        assert event.type == "google.cloud.pubsub.topic.v1.messagePublished"
        assert event.source == "//pubsub.googleapis.com/projects/p/topics/t"
        assert event.time == "2021-01-01T00:00:00Z"
        assert event.data is payload["message"]

    def test_topic_unknown_without_path(self, normalizer):
        payload = {"message": {"data": "", "messageId": "m-2"}, "subscription": "projects/p/subscriptions/s"}
        event = normalizer.normalize(payload, path="/")
        assert event.source.startswith("//pubsub.googleapis.com/projects/p/topics/")


class TestPriority:
    def test_first_match_wins(self, normalizer, storage_legacy_event):
        # Carries markers of both the nested and the flat family
        storage_legacy_event["resource"] = "projects/other"
        assert normalizer.detect(storage_legacy_event) == "legacy_context"
        event = normalizer.normalize(storage_legacy_event)
        assert event.source == "//storage.googleapis.com/projects/_/buckets/some-bucket"

    def test_canonical_beats_legacy(self, normalizer, structured_cloud_event):
        structured_cloud_event["context"] = {"eventType": "google.pubsub.topic.publish"}
        assert normalizer.detect(structured_cloud_event) == "canonical"


class TestRejection:
    @pytest.mark.parametrize("payload", [None, [], "text", 42])
    def test_non_mapping(self, normalizer, payload):
        with pytest.raises(UnrecognizedEventFormatError):
            normalizer.normalize(payload)

    def test_unknown_shape(self, normalizer):
        with pytest.raises(UnrecognizedEventFormatError):
            normalizer.normalize({"hello": "world"})
        assert normalizer.detect({"hello": "world"}) is None


def test_type_table_targets_are_canonical():
    for legacy, canonical in LEGACY_TYPE_TO_CANONICAL_TYPE.items():
        assert canonical.startswith("google."), legacy
        assert ".v1." in canonical, legacy
