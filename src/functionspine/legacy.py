"""
Event Normalizer - Legacy Trigger Payloads → CanonicalEvent.

Detects the payload format and normalizes it into a :class:`CanonicalEvent`.
Accepted formats, tried in order:

    1. canonical envelopes sent as plain JSON
    2. nested ``context`` legacy events
    3. raw Pub/Sub push messages
    4. flat legacy events

The first matching format wins. Anything else is rejected with
:class:`~functionspine.errors.UnrecognizedEventFormatError`.
"""

from __future__ import annotations

import base64
import binascii
import re
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from functionspine.errors import UnrecognizedEventFormatError
from functionspine.events import CORE_ATTRIBUTES, CanonicalEvent
from functionspine.logging import get_logger

logger = get_logger(__name__)

LEGACY_CONTENT_TYPE = "application/json"

PUBSUB_PUBLISHED = "google.cloud.pubsub.topic.v1.messagePublished"

# Legacy event type → canonical event type. Fixed; an unmapped legacy type
# is not accepted.
LEGACY_TYPE_TO_CANONICAL_TYPE: dict[str, str] = {
    "google.pubsub.topic.publish": PUBSUB_PUBLISHED,
    "providers/cloud.pubsub/eventTypes/topic.publish": PUBSUB_PUBLISHED,
    "google.storage.object.finalize": "google.cloud.storage.object.v1.finalized",
    "google.storage.object.delete": "google.cloud.storage.object.v1.deleted",
    "google.storage.object.archive": "google.cloud.storage.object.v1.archived",
    "google.storage.object.metadataUpdate": "google.cloud.storage.object.v1.metadataUpdated",
    "providers/cloud.storage/eventTypes/object.change": "google.cloud.storage.object.v1.finalized",
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
}

# Legacy type prefix → service host, used when the resource carries no
# service of its own. Checked in order.
LEGACY_TYPE_PREFIX_TO_SERVICE: tuple[tuple[str, str], ...] = (
    ("providers/cloud.firestore/", "firestore.googleapis.com"),
    ("providers/google.firebase.analytics/", "firebaseanalytics.googleapis.com"),
    ("providers/firebase.auth/", "firebaseauth.googleapis.com"),
    ("providers/google.firebase.database/", "firebasedatabase.googleapis.com"),
    ("providers/cloud.pubsub/", "pubsub.googleapis.com"),
    ("providers/cloud.storage/", "storage.googleapis.com"),
    ("google.pubsub", "pubsub.googleapis.com"),
    ("google.storage", "storage.googleapis.com"),
)

_STORAGE_RESOURCE = re.compile(r"^(projects/_/buckets/[^/]+)/(objects/.+)$")
_FIRESTORE_RESOURCE = re.compile(r"^(projects/[^/]+/databases/[^/]+)/(documents/.+)$")
_DATABASE_RESOURCE = re.compile(r"^projects/_/instances/([^/]+)/(refs/.+)$")
_DATABASE_DOMAIN = re.compile(r"^([\w-]+)\.firebasedatabase\.app$")
_PUBSUB_TOPIC_PATH = re.compile(r"^/?(projects/[^/]+/topics/[^/]+)/?$")
_PUBSUB_SUBSCRIPTION = re.compile(r"^projects/([^/]+)/subscriptions/[^/]+$")

UNKNOWN_TOPIC = "UNKNOWN_PUBSUB_TOPIC"

DEFAULT_DATABASE_LOCATION = "us-central1"


@dataclass(frozen=True)
class LegacyFormat:
    """A legacy payload family.

    ``markers`` are the top-level fields whose presence identifies the
    family; ``convert`` builds the envelope from a matching payload.
    """

    name: str
    markers: tuple[str, ...]
    convert: Callable[[Mapping[str, Any], str | None], CanonicalEvent]
    mapping_markers: tuple[str, ...] = ()

    def matches(self, payload: Mapping[str, Any]) -> bool:
        if not all(marker in payload for marker in self.markers):
            return False
        return all(isinstance(payload.get(marker), Mapping) for marker in self.mapping_markers)


# =============================================================================
# CANONICAL PASS-THROUGH
# =============================================================================


def is_canonical(payload: Mapping[str, Any]) -> bool:
    """True if the payload already carries the canonical envelope markers."""
    return (
        "id" in payload
        and "source" in payload
        and "type" in payload
        and ("specversion" in payload or "specVersion" in payload)
    )


def _canonical_event(payload: Mapping[str, Any]) -> CanonicalEvent:
    spec_version = payload.get("specversion", payload.get("specVersion"))
    content_type = payload.get("datacontenttype", payload.get("dataContentType"))

    data = payload.get("data")
    if data is None and "data_base64" in payload:
        try:
            data = base64.b64decode(payload["data_base64"], validate=True)
        except (binascii.Error, TypeError, ValueError) as exc:
            raise UnrecognizedEventFormatError("Invalid data_base64 in CloudEvent", cause=exc) from exc

    extensions = {
        key: value
        for key, value in payload.items()
        if key not in CORE_ATTRIBUTES and key not in ("specVersion", "dataContentType")
    }
    try:
        return CanonicalEvent(
            id=payload["id"],
            source=payload["source"],
            type=payload["type"],
            spec_version=spec_version,
            data_content_type=content_type if isinstance(content_type, str) else None,
            data=data,
            subject=_optional_str(payload.get("subject")),
            time=_optional_str(payload.get("time")),
            extensions=extensions,
        )
    except ValueError as exc:
        raise UnrecognizedEventFormatError(f"Invalid CloudEvent: {exc}", cause=exc) from exc


# =============================================================================
# LEGACY FAMILIES
# =============================================================================


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _event_id(value: Any) -> str:
    return str(value) if value not in (None, "") else str(uuid.uuid4())


def _canonical_type(legacy_type: Any) -> str:
    canonical = LEGACY_TYPE_TO_CANONICAL_TYPE.get(legacy_type) if isinstance(legacy_type, str) else None
    if canonical is None:
        raise UnrecognizedEventFormatError(f"Unknown legacy event type: {legacy_type!r}")
    return canonical


def _service_for(legacy_type: str) -> str | None:
    for prefix, service in LEGACY_TYPE_PREFIX_TO_SERVICE:
        if legacy_type.startswith(prefix):
            return service
    return None


def _database_location(domain: Any) -> str:
    if isinstance(domain, str):
        match = _DATABASE_DOMAIN.match(domain)
        if match:
            return match.group(1)
    return DEFAULT_DATABASE_LOCATION


def _source_and_subject(
    service: str,
    resource: str,
    data: Any,
    domain: Any = None,
) -> tuple[str, str | None]:
    """Split a legacy resource name into a source URI and a subject."""
    if service == "storage.googleapis.com":
        match = _STORAGE_RESOURCE.match(resource)
        if match:
            return f"//{service}/{match.group(1)}", match.group(2)
    elif service == "firestore.googleapis.com":
        match = _FIRESTORE_RESOURCE.match(resource)
        if match:
            return f"//{service}/{match.group(1)}", match.group(2)
    elif service == "firebasedatabase.googleapis.com":
        match = _DATABASE_RESOURCE.match(resource)
        if match:
            location = _database_location(domain)
            source = f"//{service}/projects/_/locations/{location}/instances/{match.group(1)}"
            return source, match.group(2)
    elif service == "firebaseauth.googleapis.com":
        uid = data.get("uid") if isinstance(data, Mapping) else None
        return f"//{service}/{resource}", f"users/{uid}" if uid else None
    return f"//{service}/{resource}", None


def _from_legacy_context(
    context: Mapping[str, Any],
    data: Any,
    domain: Any = None,
) -> CanonicalEvent:
    legacy_type = context.get("eventType")
    event_type = _canonical_type(legacy_type)

    resource = context.get("resource")
    service = None
    if isinstance(resource, Mapping):
        service = resource.get("service")
        resource = resource.get("name")
    service = service or _service_for(legacy_type)
    if not service or not isinstance(resource, str) or not resource:
        raise UnrecognizedEventFormatError(f"Legacy event of type {legacy_type!r} has no resource")

    source, subject = _source_and_subject(service, resource, data, domain)
    return CanonicalEvent(
        id=_event_id(context.get("eventId")),
        source=source,
        type=event_type,
        spec_version="1.0",
        data_content_type=LEGACY_CONTENT_TYPE,
        data=data,
        subject=subject,
        time=_optional_str(context.get("timestamp")),
    )


def _convert_nested(payload: Mapping[str, Any], path: str | None) -> CanonicalEvent:
    return _from_legacy_context(payload["context"], payload["data"], payload.get("domain"))


def _convert_flat(payload: Mapping[str, Any], path: str | None) -> CanonicalEvent:
    return _from_legacy_context(payload, payload["data"], payload.get("domain"))


def _convert_pubsub_push(payload: Mapping[str, Any], path: str | None) -> CanonicalEvent:
    message = payload["message"]
    match = _PUBSUB_TOPIC_PATH.match(path or "")
    if match:
        resource = match.group(1)
    else:
        subscription = payload.get("subscription")
        project = _PUBSUB_SUBSCRIPTION.match(subscription) if isinstance(subscription, str) else None
        if project is None:
            raise UnrecognizedEventFormatError("Pub/Sub push message has no usable subscription")
        resource = f"projects/{project.group(1)}/topics/{UNKNOWN_TOPIC}"

    return CanonicalEvent(
        id=_event_id(message.get("messageId") or message.get("message_id")),
        source=f"//pubsub.googleapis.com/{resource}",
        type=PUBSUB_PUBLISHED,
        spec_version="1.0",
        data_content_type=LEGACY_CONTENT_TYPE,
        data=message,
        time=_optional_str(message.get("publishTime") or message.get("publish_time")),
    )


# Most specific first. The first family whose markers are present wins.
LEGACY_FORMATS: tuple[LegacyFormat, ...] = (
    LegacyFormat("legacy_context", ("context", "data"), _convert_nested, mapping_markers=("context",)),
    LegacyFormat("pubsub_push", ("message", "subscription"), _convert_pubsub_push, mapping_markers=("message",)),
    LegacyFormat("legacy_flat", ("data", "resource"), _convert_flat),
)


class EventNormalizer:
    """Converts raw event payloads into :class:`CanonicalEvent` instances.

    Stateless; one instance can be shared by all requests.
    """

    def __init__(self, formats: tuple[LegacyFormat, ...] = LEGACY_FORMATS):
        self.formats = formats

    def detect(self, payload: Mapping[str, Any]) -> str | None:
        """Name of the format that would handle ``payload``, or None."""
        if is_canonical(payload):
            return "canonical"
        for legacy_format in self.formats:
            if legacy_format.matches(payload):
                return legacy_format.name
        return None

    def normalize(self, payload: Any, *, path: str | None = None) -> CanonicalEvent:
        """Normalize a decoded JSON payload.

        Args:
            payload: The decoded request body
            path: Request path; raw Pub/Sub pushes carry the topic there

        Raises:
            UnrecognizedEventFormatError: If no format accepts the payload
        """
        if not isinstance(payload, Mapping):
            raise UnrecognizedEventFormatError("Event payload must be a JSON object")

        if is_canonical(payload):
            return _canonical_event(payload)

        for legacy_format in self.formats:
            if legacy_format.matches(payload):
                logger.debug("legacy_event_detected", format=legacy_format.name)
                return legacy_format.convert(payload, path)

        raise UnrecognizedEventFormatError("Payload is not a CloudEvent or a recognized legacy event")


__all__ = [
    "EventNormalizer",
    "LegacyFormat",
    "LEGACY_FORMATS",
    "LEGACY_TYPE_TO_CANONICAL_TYPE",
    "LEGACY_TYPE_PREFIX_TO_SERVICE",
    "is_canonical",
]
