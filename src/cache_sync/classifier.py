"""
Pipeline error classifier.

Maps any failure raised while processing an event onto a retry decision.
Rules are evaluated in a fixed order and the first match wins:

    1. missing mandatory field       -> terminal  "validation"
    2. test-data marker              -> terminal  "test-data"
    3. HTTP 404                      -> terminal  "not-found"
    4. HTTP 401                      -> terminal  "unauthenticated"
    5. HTTP 400                      -> terminal  "bad-request"
    6. transient transport code      -> retryable "network"
    7. HTTP >= 500                   -> retryable "server-error"
    8. anything else                 -> terminal  "unknown"

A 404 raised while fetching test data is therefore "test-data", not
"not-found".
"""

import logging
import re

from cache_sync.schemas.results import Classification
from core.errors import (
    TRANSIENT_TRANSPORT_CODES,
    DecodeError,
    ValidationError,
    transport_code_for,
)

logger = logging.getLogger(__name__)

REASON_VALIDATION = "validation"
REASON_TEST_DATA = "test-data"
REASON_NOT_FOUND = "not-found"
REASON_UNAUTHENTICATED = "unauthenticated"
REASON_BAD_REQUEST = "bad-request"
REASON_NETWORK = "network"
REASON_SERVER_ERROR = "server-error"
REASON_UNKNOWN = "unknown"

MISSING_FIELD_MARKERS = (
    "missing childid",
    "missing parentid",
    "missing required field",
    "missing mandatory field",
    "requires parentid",
)

SENTINEL_PATTERN = re.compile(r"test-(?:parent|child)-\d+", re.IGNORECASE)
TEST_MARKER = "test"

_MAX_CAUSE_DEPTH = 8


def _causes(error: BaseException):
    """Yield the error and its chained causes, outermost first."""
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen and len(seen) < _MAX_CAUSE_DEPTH:
        seen.add(id(current))
        yield current
        current = (
            getattr(current, "cause", None) or current.__cause__ or current.__context__
        )


def status_code_of(error: BaseException) -> int | None:
    """HTTP status carried by the error or anything it wraps."""
    for exc in _causes(error):
        status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
        if isinstance(status, int):
            return status
    return None


def transport_code_of(error: BaseException) -> str | None:
    """Recognized transport code carried by the error or anything it wraps."""
    for exc in _causes(error):
        code = getattr(exc, "transport_code", None) or transport_code_for(exc)
        if code:
            return code
    return None


class PipelineErrorClassifier:
    """Classifies pipeline failures as retryable or terminal."""

    def classify(self, error: BaseException, subject: str | None = None) -> Classification:
        message = str(error)
        lowered = message.lower()
        subject = subject or ""

        if isinstance(error, (ValidationError, DecodeError)) or any(
            marker in lowered for marker in MISSING_FIELD_MARKERS
        ):
            return Classification.terminal(REASON_VALIDATION)

        if self._has_test_marker(message, subject):
            return Classification.terminal(REASON_TEST_DATA)

        status = status_code_of(error)
        if status == 404:
            return Classification.terminal(REASON_NOT_FOUND)
        if status == 401:
            return Classification.terminal(REASON_UNAUTHENTICATED)
        if status == 400:
            return Classification.terminal(REASON_BAD_REQUEST)

        if transport_code_of(error) in TRANSIENT_TRANSPORT_CODES:
            return Classification.retry(REASON_NETWORK)

        if status is not None and status >= 500:
            return Classification.retry(REASON_SERVER_ERROR)

        logger.debug(
            "Unrecognized failure classified terminal",
            extra={"error_kind": type(error).__name__, "http_status": status},
        )
        return Classification.terminal(REASON_UNKNOWN)

    @staticmethod
    def _has_test_marker(message: str, subject: str) -> bool:
        if SENTINEL_PATTERN.search(message) or SENTINEL_PATTERN.search(subject):
            return True
        return TEST_MARKER in message.lower() or TEST_MARKER in subject.lower()


__all__ = [
    "PipelineErrorClassifier",
    "status_code_of",
    "transport_code_of",
    "REASON_VALIDATION",
    "REASON_TEST_DATA",
    "REASON_NOT_FOUND",
    "REASON_UNAUTHENTICATED",
    "REASON_BAD_REQUEST",
    "REASON_NETWORK",
    "REASON_SERVER_ERROR",
    "REASON_UNKNOWN",
]
