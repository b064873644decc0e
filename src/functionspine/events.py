"""
CanonicalEvent - Normalized Event Container.

Every event function receives a :class:`CanonicalEvent`, whatever shape
the trigger payload arrived in: binary or structured CloudEvents, or one
of the legacy formats handled by :mod:`functionspine.legacy`.

An envelope is either complete or not built at all: the required
attributes are validated on construction.
"""

from __future__ import annotations

import base64
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any

from cloudevents.core.bindings.http import CE_PREFIX, HTTPMessage, from_binary, from_structured
from cloudevents.core.exceptions import BaseCloudEventException
from cloudevents.core.formats.json import JSONFormat

from functionspine.errors import UnrecognizedEventFormatError

SUPPORTED_SPEC_VERSIONS = frozenset({"1.0", "0.3"})

STRUCTURED_CONTENT_TYPE = JSONFormat.CONTENT_TYPE

# Attributes with a dedicated field; everything else is an extension.
CORE_ATTRIBUTES = frozenset(
    {"id", "source", "type", "specversion", "datacontenttype", "subject", "time", "data", "data_base64"}
)


def _format_time(value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, datetime):
        text = value.isoformat()
        return text[:-6] + "Z" if text.endswith("+00:00") else text
    return str(value)


@dataclass(frozen=True, slots=True)
class CanonicalEvent:
    """
    Normalized event envelope.

    Attributes:
        id: Event identifier, unique per source
        source: URI-reference identifying the event producer
        type: Event type, e.g. ``google.cloud.storage.object.v1.finalized``
        spec_version: CloudEvents spec version (``1.0`` or ``0.3``)
        data_content_type: Media type of ``data`` when known
        data: Event payload, passed through unchanged
        subject: Subject of the event within the source
        time: Timestamp string as delivered by the producer
        extensions: Any additional CloudEvents attributes
    """

    id: str
    source: str
    type: str
    spec_version: str = "1.0"
    data_content_type: str | None = None
    data: Any = None
    subject: str | None = None
    time: str | None = None
    extensions: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("id", "source", "type", "spec_version"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise ValueError(f"CloudEvent attribute {name!r} must be a non-empty string")
        if self.spec_version not in SUPPORTED_SPEC_VERSIONS:
            raise ValueError(f"Unsupported CloudEvents spec version {self.spec_version!r}")
        object.__setattr__(self, "extensions", MappingProxyType(dict(self.extensions)))

    def to_dict(self) -> dict[str, Any]:
        """Render the envelope in structured-mode JSON form."""
        result: dict[str, Any] = {
            "specversion": self.spec_version,
            "id": self.id,
            "source": self.source,
            "type": self.type,
        }
        if self.data_content_type is not None:
            result["datacontenttype"] = self.data_content_type
        if self.subject is not None:
            result["subject"] = self.subject
        if self.time is not None:
            result["time"] = self.time
        result.update(self.extensions)
        if isinstance(self.data, (bytes, bytearray)):
            result["data_base64"] = base64.b64encode(self.data).decode("ascii")
        elif self.data is not None:
            result["data"] = self.data
        return result

    @classmethod
    def from_cloudevent(cls, event: Any) -> CanonicalEvent:
        """Build from a CloudEvents SDK event (``cloudevents.core``)."""
        attributes = {key: value for key, value in event.get_attributes().items() if value is not None}
        return cls(
            id=attributes.get("id", ""),
            source=attributes.get("source", ""),
            type=attributes.get("type", ""),
            spec_version=attributes.get("specversion", ""),
            data_content_type=attributes.get("datacontenttype"),
            data=event.get_data(),
            subject=attributes.get("subject"),
            time=_format_time(attributes.get("time")),
            extensions={key: value for key, value in attributes.items() if key not in CORE_ATTRIBUTES},
        )


# =============================================================================
# WIRE DECODING
# =============================================================================


def _from_sdk(reader: Any, message: HTTPMessage, mode: str) -> CanonicalEvent:
    try:
        cloud_event = reader(message, JSONFormat())
        return CanonicalEvent.from_cloudevent(cloud_event)
    except (BaseCloudEventException, ValueError, TypeError, AttributeError) as exc:
        raise UnrecognizedEventFormatError(f"Invalid {mode}-mode CloudEvent: {exc}", cause=exc) from exc


def decode_event(
    headers: Mapping[str, str],
    body: bytes,
    *,
    path: str | None = None,
    normalizer: Any = None,
) -> CanonicalEvent:
    """Decode an HTTP request into a :class:`CanonicalEvent`.

    Binary-mode (``ce-*`` headers) and structured-mode CloudEvents are
    decoded by the CloudEvents SDK. Any other body is JSON-decoded and
    handed to the normalizer, which accepts canonical envelopes sent as
    plain JSON as well as the legacy formats.

    Raises:
        UnrecognizedEventFormatError: If the request is not an event
    """
    from functionspine.legacy import EventNormalizer

    headers = {key.lower(): value for key, value in headers.items()}
    message = HTTPMessage(headers=headers, body=body)

    if any(key.startswith(CE_PREFIX) for key in headers):
        return _from_sdk(from_binary, message, "binary")
    if headers.get("content-type", "").startswith(STRUCTURED_CONTENT_TYPE):
        return _from_sdk(from_structured, message, "structured")

    try:
        payload = json.loads(body) if body else None
    except ValueError as exc:
        raise UnrecognizedEventFormatError("Event body is not valid JSON", cause=exc) from exc

    return (normalizer or EventNormalizer()).normalize(payload, path=path)


__all__ = ["CanonicalEvent", "SUPPORTED_SPEC_VERSIONS", "CORE_ATTRIBUTES", "decode_event"]
