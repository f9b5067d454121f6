"""Pipeline value types: identifiers, enrichment results, cache and audit records."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from cache_sync.schemas.fields import DocumentFields
from core.types import ErrorCategory


@dataclass(frozen=True)
class Identifiers:
    """Entity identifiers extracted from a document. child_id is always present."""

    child_id: str
    parent_id: str | None = None


class PipelineMode(str, Enum):
    ACTIVITY = "activity"
    PROFILE = "profile"


@dataclass(frozen=True)
class ActivityResult:
    """Multi-day summary plus current-period logs for one child."""

    summary: Any
    current_logs: dict[str, Any]
    event_source: str


@dataclass(frozen=True)
class ProfileResult:
    profile: dict[str, Any]
    event_source: str


@dataclass(frozen=True)
class LimitedResult:
    """Degraded activity result: no credential, so only the decoded fields are cached."""

    raw_fields: DocumentFields
    event_source: str


EnrichmentResult = ActivityResult | ProfileResult | LimitedResult


@dataclass(frozen=True)
class CacheRecord:
    key: str
    value: dict[str, Any]
    ttl_seconds: int
    kind: str


@dataclass(frozen=True)
class Classification:
    """Classifier verdict: retryable (transient) or terminal, with a short reason."""

    category: ErrorCategory
    reason: str

    @property
    def retryable(self) -> bool:
        return self.category == ErrorCategory.TRANSIENT

    @classmethod
    def terminal(cls, reason: str) -> "Classification":
        return cls(ErrorCategory.PERMANENT, reason)

    @classmethod
    def retry(cls, reason: str) -> "Classification":
        return cls(ErrorCategory.TRANSIENT, reason)


class FailureRecord(BaseModel):
    """Audit record for an event that failed terminally. Write-once."""

    event_id: str
    collection_name: str
    subject_path: str
    error_kind: str
    message: str
    reason: str
    delivery_attempt: int = 1
    terminal: bool = True
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class OutcomeStatus(str, Enum):
    PROCESSED = "processed"
    SKIPPED = "skipped"
    FAILED_TERMINAL = "failed_terminal"


@dataclass(frozen=True)
class ProcessingOutcome:
    """Result of one acknowledged event. Retryable failures raise instead."""

    status: OutcomeStatus
    event_id: str
    reason: str | None = None
    keys_written: tuple[str, ...] = field(default_factory=tuple)


__all__ = [
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
