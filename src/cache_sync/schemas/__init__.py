"""Schemas for change events, decoded documents and pipeline results."""

from cache_sync.schemas.events import ChangeEvent, ChangeKind, DecodedDocument
from cache_sync.schemas.fields import (
    BooleanValue,
    DocumentFields,
    DoubleValue,
    FieldValue,
    IntegerValue,
    ListValue,
    MapValue,
    StringValue,
    TimestampValue,
)
from cache_sync.schemas.results import (
    ActivityResult,
    CacheRecord,
    Classification,
    EnrichmentResult,
    FailureRecord,
    Identifiers,
    LimitedResult,
    OutcomeStatus,
    PipelineMode,
    ProcessingOutcome,
    ProfileResult,
)

__all__ = [
    # Events
    "ChangeEvent",
    "ChangeKind",
    "DecodedDocument",
    # Fields
    "FieldValue",
    "StringValue",
    "IntegerValue",
    "DoubleValue",
    "BooleanValue",
    "TimestampValue",
    "MapValue",
    "ListValue",
    "DocumentFields",
    # Results
    "Identifiers",
    "PipelineMode",
    "ActivityResult",
    "ProfileResult",
    "LimitedResult",
    "EnrichmentResult",
    "CacheRecord",
    "Classification",
    "FailureRecord",
    "OutcomeStatus",
    "ProcessingOutcome",
]
