"""
Unified exception hierarchy for the change-event pipeline.

Every stage raises one of these typed exceptions. The pipeline classifier
consumes them exactly once to decide between redelivery and acknowledgement.
"""

import asyncio
import errno
import socket

import aiohttp

# Import ErrorCategory from canonical source to avoid duplicate enum issues
# (comparing enums from different classes always returns False)
from core.types import ErrorCategory

# Transport codes the classifier treats as transient
TRANSPORT_CONNECTION_REFUSED = "connection_refused"
TRANSPORT_TIMEOUT = "timeout"
TRANSPORT_DNS_FAILURE = "dns_failure"
TRANSPORT_CONNECTION_RESET = "connection_reset"

TRANSIENT_TRANSPORT_CODES = frozenset(
    {
        TRANSPORT_CONNECTION_REFUSED,
        TRANSPORT_TIMEOUT,
        TRANSPORT_DNS_FAILURE,
        TRANSPORT_CONNECTION_RESET,
    }
)


class PipelineError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error description
        category: Error classification hint for the classifier
        cause: Original exception if wrapping
        context: Additional context dict for debugging
        status_code: HTTP status of the underlying response, if any
        transport_code: Recognized transport failure code, if any
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        context: dict | None = None,
        status_code: int | None = None,
        transport_code: str | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        self.status_code = status_code
        self.transport_code = transport_code
        super().__init__(message)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Input Errors (Permanent)
# =============================================================================


class DecodeError(PipelineError):
    """No known payload encoding applies."""

    category = ErrorCategory.PERMANENT


class ValidationError(PipelineError):
    """A mandatory identifier is missing or a mode precondition is unmet."""

    category = ErrorCategory.PERMANENT


class SchemaError(PipelineError):
    """An upstream response lacks fields the pipeline depends on."""

    category = ErrorCategory.PERMANENT


# =============================================================================
# HTTP Errors
# =============================================================================


class AuthError(PipelineError):
    """401 from an upstream service."""

    category = ErrorCategory.PERMANENT


class NotFoundError(PipelineError):
    """404 from an upstream service."""

    category = ErrorCategory.PERMANENT


class BadRequestError(PipelineError):
    """400 from an upstream service."""

    category = ErrorCategory.PERMANENT


class ServerError(PipelineError):
    """5xx from an upstream service."""

    category = ErrorCategory.TRANSIENT


# =============================================================================
# Transport Errors
# =============================================================================


class NetworkTransientError(PipelineError):
    """Connection refused, timeout, DNS failure or connection reset."""

    category = ErrorCategory.TRANSIENT


class UnknownError(PipelineError):
    """Anything that could not be mapped onto a more specific type."""

    category = ErrorCategory.UNKNOWN


# =============================================================================
# Broker Signalling
# =============================================================================


class RetryableEventError(PipelineError):
    """
    Raised by the processor after a failure has been classified as retryable.

    Propagating this uncaught is how the hosting adapter tells the broker to
    redeliver. ``reason`` carries the classifier's reason string.
    """

    category = ErrorCategory.TRANSIENT

    def __init__(
        self,
        message: str,
        reason: str,
        cause: BaseException | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause=cause, context=context)
        self.reason = reason


# =============================================================================
# Classification Utilities
# =============================================================================

_STATUS_ERRORS: dict[int, tuple[str, type[PipelineError]]] = {
    400: ("Bad request", BadRequestError),
    401: ("Unauthorized", AuthError),
    404: ("Not found", NotFoundError),
}


def classify_api_error(status: int, url: str) -> PipelineError:
    """Map a non-2xx HTTP status onto the error taxonomy."""
    entry = _STATUS_ERRORS.get(status)
    if entry:
        label, error_class = entry
        return error_class(f"{label} ({status}): {url}", status_code=status)

    if status >= 500:
        return ServerError(f"Server error ({status}): {url}", status_code=status)

    return UnknownError(f"HTTP error ({status}): {url}", status_code=status)


def transport_code_for(exc: BaseException) -> str | None:
    """
    Return the recognized transport code for a low-level exception, if any.

    Checks aiohttp and OS-level exception types. Returns None for anything
    that is not one of the four recognized transient transport failures.
    """
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, aiohttp.ServerTimeoutError)):
        return TRANSPORT_TIMEOUT

    if isinstance(exc, aiohttp.ClientConnectorError):
        os_error = exc.os_error
        if isinstance(os_error, socket.gaierror):
            return TRANSPORT_DNS_FAILURE
        if isinstance(os_error, ConnectionRefusedError):
            return TRANSPORT_CONNECTION_REFUSED
        if isinstance(os_error, ConnectionResetError):
            return TRANSPORT_CONNECTION_RESET
        if os_error.errno == errno.ECONNREFUSED:
            return TRANSPORT_CONNECTION_REFUSED
        return None

    if isinstance(exc, aiohttp.ServerDisconnectedError):
        return TRANSPORT_CONNECTION_RESET

    if isinstance(exc, socket.gaierror):
        return TRANSPORT_DNS_FAILURE
    if isinstance(exc, ConnectionRefusedError):
        return TRANSPORT_CONNECTION_REFUSED
    if isinstance(exc, ConnectionResetError):
        return TRANSPORT_CONNECTION_RESET

    if isinstance(exc, OSError) and exc.errno in (errno.ECONNREFUSED, errno.ECONNRESET):
        return (
            TRANSPORT_CONNECTION_REFUSED
            if exc.errno == errno.ECONNREFUSED
            else TRANSPORT_CONNECTION_RESET
        )

    return None


def wrap_transport_error(exc: BaseException, url: str) -> PipelineError:
    """
    Wrap a transport-level exception from an outbound call.

    Recognized transient failures become NetworkTransientError carrying the
    transport code; everything else becomes UnknownError.
    """
    code = transport_code_for(exc)
    if code is not None:
        return NetworkTransientError(
            f"Transport failure ({code}): {url}",
            cause=exc,
            transport_code=code,
        )
    return UnknownError(f"Request failed: {url}", cause=exc)
