"""
Error taxonomy for the change-event pipeline.

Provides:
- ErrorCategory enum for classifying errors
- PipelineError hierarchy for typed exceptions
- HTTP and transport mapping utilities
"""

from core.errors.exceptions import (
    TRANSIENT_TRANSPORT_CODES,
    TRANSPORT_CONNECTION_REFUSED,
    TRANSPORT_CONNECTION_RESET,
    TRANSPORT_DNS_FAILURE,
    TRANSPORT_TIMEOUT,
    AuthError,
    BadRequestError,
    DecodeError,
    NetworkTransientError,
    NotFoundError,
    # Base class
    PipelineError,
    RetryableEventError,
    SchemaError,
    ServerError,
    UnknownError,
    ValidationError,
    # Mapping utilities
    classify_api_error,
    transport_code_for,
    wrap_transport_error,
)
from core.types import ErrorCategory

__all__ = [
    # Enums
    "ErrorCategory",
    # Base class
    "PipelineError",
    # Taxonomy
    "DecodeError",
    "ValidationError",
    "SchemaError",
    "AuthError",
    "NotFoundError",
    "BadRequestError",
    "NetworkTransientError",
    "ServerError",
    "UnknownError",
    "RetryableEventError",
    # Transport codes
    "TRANSIENT_TRANSPORT_CODES",
    "TRANSPORT_CONNECTION_REFUSED",
    "TRANSPORT_CONNECTION_RESET",
    "TRANSPORT_DNS_FAILURE",
    "TRANSPORT_TIMEOUT",
    # Mapping utilities
    "classify_api_error",
    "transport_code_for",
    "wrap_transport_error",
]
