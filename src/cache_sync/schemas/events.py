"""
Change-event schemas.

Contains the Pydantic model for one delivered change notification and the
decoded document produced from its payload.
"""

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cache_sync.schemas.fields import DocumentFields

UNKNOWN_COLLECTION = "unknown"


def _attribute(envelope: dict[str, Any], *names: str) -> str | None:
    """First present envelope attribute, as text. Non-string values are stringified."""
    for name in names:
        value = envelope.get(name)
        if value is not None:
            return value if isinstance(value, str) else str(value)
    return None


class ChangeKind(str, Enum):
    """Document mutation kind, derived from before/after snapshot markers."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class ChangeEvent(BaseModel):
    """One delivered notification of a document mutation.

    Attributes:
        event_id: Broker-assigned identifier, stable across redeliveries
        collection_name: Collection the changed document belongs to
        subject_path: Document path, e.g. ``documents/feedEvents/abc``
        raw_payload: Undecoded ``data`` (dict, str or bytes)
        delivery_attempt: 1 on first delivery, incremented by the broker
        event_type: Envelope ``type`` (informational)
        data_content_type: Envelope ``dataContentType`` (informational)

    Example:
        >>> event = ChangeEvent.from_envelope({
        ...     "id": "evt-1",
        ...     "subject": "documents/feedEvents/doc1",
        ...     "data": {"value": {"fields": {"childId": {"stringValue": "c1"}}}},
        ... })
        >>> event.collection_name
        'feedEvents'
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    event_id: str = Field(..., min_length=1, description="Broker-assigned event identifier")
    collection_name: str = Field(..., min_length=1, description="Source collection")
    subject_path: str = Field(default="", description="Document path within the store")
    raw_payload: Any = Field(default=None, description="Undecoded payload")
    delivery_attempt: int = Field(default=1, ge=1, description="Delivery attempt, 1-based")
    event_type: str | None = Field(default=None, description="Envelope type")
    data_content_type: str | None = Field(default=None, description="Envelope content type")

    @field_validator("event_id", "collection_name")
    @classmethod
    def validate_non_empty_strings(cls, v: str, info) -> str:
        """Ensure string fields are not empty or whitespace-only."""
        if not v or not v.strip():
            raise ValueError(f"{info.field_name} cannot be empty or whitespace")
        return v.strip()

    @staticmethod
    def collection_from_subject(subject: str | None) -> str | None:
        """Derive the collection from ``documents/<collection>/<id>`` or ``<collection>/<id>``."""
        if not subject:
            return None
        parts = [part.strip() for part in subject.split("/") if part.strip()]
        if parts and parts[0] == "documents":
            parts = parts[1:]
        if len(parts) >= 2:
            return parts[-2]
        return None

    @classmethod
    def from_envelope(
        cls, envelope: dict[str, Any], collection_name: str | None = None
    ) -> "ChangeEvent":
        """
        Create from an inbound event envelope.

        Handles both camelCase and lowercase CloudEvents attribute names.
        A missing id gets a generated one; a missing or unparseable delivery
        attempt counts as the first delivery.

        Args:
            envelope: ``{id, type, subject, deliveryAttempt, dataContentType, data}``
            collection_name: Fixed collection (e.g. from the route); derived
                from the subject when omitted

        Returns:
            ChangeEvent instance
        """
        subject = _attribute(envelope, "subject") or ""
        collection = (
            collection_name or cls.collection_from_subject(subject) or UNKNOWN_COLLECTION
        )

        attempt = envelope.get("deliveryAttempt", envelope.get("deliveryattempt"))
        try:
            delivery_attempt = max(1, int(attempt)) if attempt is not None else 1
        except (TypeError, ValueError, OverflowError):
            delivery_attempt = 1

        return cls(
            event_id=(_attribute(envelope, "id") or "").strip() or str(uuid.uuid4()),
            collection_name=collection,
            subject_path=subject,
            raw_payload=envelope.get("data"),
            delivery_attempt=delivery_attempt,
            event_type=_attribute(envelope, "type"),
            data_content_type=_attribute(envelope, "dataContentType", "datacontenttype"),
        )


@dataclass(frozen=True)
class DecodedDocument:
    """Decoder output: typed fields plus the derived change kind."""

    fields: DocumentFields
    change_kind: ChangeKind
    strategy: str


__all__ = [
    "ChangeKind",
    "ChangeEvent",
    "DecodedDocument",
    "UNKNOWN_COLLECTION",
]
