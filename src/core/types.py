"""
Core types shared across the cache-sync library.

This module provides base enums and protocol definitions used by the error
hierarchy and the classifier so both sides agree on one vocabulary.
"""

from enum import Enum
from typing import Protocol


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that may succeed on redelivery
                   (e.g., connection refused, timeouts, 5xx responses)
        PERMANENT: Failures that will never succeed on redelivery
                   (e.g., missing identifiers, 404, schema violations)
        UNKNOWN: Unclassified errors; the classifier treats these as permanent
    """

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class ErrorClassifier(Protocol):
    """
    Protocol for error classification implementations.

    The pipeline classifier implements this so the processor can be tested
    with a stub that forces a particular decision.
    """

    def classify(self, error: BaseException, subject: str | None = None):
        """
        Classify an exception into a retry decision.

        Args:
            error: Exception raised by any pipeline stage
            subject: Subject path of the event being processed

        Returns:
            Classification with retryable flag and reason
        """
        ...
