"""
Tests for exception hierarchy and error mapping helpers.
"""

import asyncio
import errno
import socket
from unittest.mock import MagicMock

import aiohttp
import pytest

from core.errors.exceptions import (
    TRANSIENT_TRANSPORT_CODES,
    TRANSPORT_CONNECTION_REFUSED,
    TRANSPORT_CONNECTION_RESET,
    TRANSPORT_DNS_FAILURE,
    TRANSPORT_TIMEOUT,
    AuthError,
    BadRequestError,
    DecodeError,
    ErrorCategory,
    NetworkTransientError,
    NotFoundError,
    PipelineError,
    RetryableEventError,
    SchemaError,
    ServerError,
    UnknownError,
    ValidationError,
    classify_api_error,
    transport_code_for,
    wrap_transport_error,
)


def _connector_error(os_error: OSError) -> aiohttp.ClientConnectorError:
    connection_key = MagicMock()
    connection_key.ssl = False
    return aiohttp.ClientConnectorError(connection_key, os_error)


class TestPipelineError:
    """Test base PipelineError class."""

    def test_basic_error(self):
        """Can create basic error with message."""
        err = PipelineError("Something went wrong")
        assert err.message == "Something went wrong"
        assert err.cause is None
        assert err.context == {}
        assert err.status_code is None
        assert err.transport_code is None
        assert err.category == ErrorCategory.UNKNOWN

    def test_str_includes_cause(self):
        """String form appends the wrapped cause."""
        err = PipelineError("Outer", cause=ValueError("inner"))
        assert str(err) == "Outer | Caused by: inner"

    def test_kind_is_class_name(self):
        assert SchemaError("x").kind == "SchemaError"


class TestTaxonomyCategories:
    """Each taxonomy member carries its category hint."""

    @pytest.mark.parametrize(
        "error_class",
        [DecodeError, ValidationError, SchemaError, AuthError, NotFoundError, BadRequestError],
    )
    def test_permanent(self, error_class):
        assert error_class("x").category == ErrorCategory.PERMANENT

    @pytest.mark.parametrize("error_class", [ServerError, NetworkTransientError])
    def test_transient(self, error_class):
        assert error_class("x").category == ErrorCategory.TRANSIENT

    def test_unknown(self):
        assert UnknownError("x").category == ErrorCategory.UNKNOWN

    def test_retryable_event_error_keeps_reason(self):
        err = RetryableEventError("Retryable failure", reason="network")
        assert err.reason == "network"
        assert err.category == ErrorCategory.TRANSIENT


class TestClassifyApiError:
    """Test HTTP status mapping."""

    def test_400_bad_request(self):
        error = classify_api_error(400, "https://api.test/summary")
        assert isinstance(error, BadRequestError)
        assert error.status_code == 400
        assert "Bad request" in str(error)

    def test_401_unauthorized(self):
        error = classify_api_error(401, "https://api.test/token/p1")
        assert isinstance(error, AuthError)
        assert error.status_code == 401

    def test_404_not_found(self):
        error = classify_api_error(404, "https://api.test/profile/c1")
        assert isinstance(error, NotFoundError)
        assert "https://api.test/profile/c1" in str(error)

    @pytest.mark.parametrize("status", [500, 502, 503, 504])
    def test_5xx_server_errors(self, status):
        error = classify_api_error(status, "https://api.test/summary")
        assert isinstance(error, ServerError)
        assert error.status_code == status

    @pytest.mark.parametrize("status", [403, 409, 429])
    def test_other_statuses_are_unknown(self, status):
        error = classify_api_error(status, "https://api.test/summary")
        assert isinstance(error, UnknownError)
        assert error.status_code == status


class TestTransportCodeFor:
    """Test recognition of transient transport failures."""

    def test_timeout(self):
        assert transport_code_for(asyncio.TimeoutError()) == TRANSPORT_TIMEOUT
        assert transport_code_for(aiohttp.ServerTimeoutError()) == TRANSPORT_TIMEOUT

    def test_connector_refused(self):
        exc = _connector_error(ConnectionRefusedError(errno.ECONNREFUSED, "refused"))
        assert transport_code_for(exc) == TRANSPORT_CONNECTION_REFUSED

    def test_connector_dns_failure(self):
        exc = _connector_error(socket.gaierror(-2, "Name or service not known"))
        assert transport_code_for(exc) == TRANSPORT_DNS_FAILURE

    def test_connector_other_os_error_is_unrecognized(self):
        exc = _connector_error(OSError(errno.EACCES, "denied"))
        assert transport_code_for(exc) is None

    def test_server_disconnected_is_reset(self):
        assert transport_code_for(aiohttp.ServerDisconnectedError()) == TRANSPORT_CONNECTION_RESET

    def test_raw_os_errors(self):
        assert transport_code_for(ConnectionResetError()) == TRANSPORT_CONNECTION_RESET
        assert transport_code_for(ConnectionRefusedError()) == TRANSPORT_CONNECTION_REFUSED
        assert transport_code_for(socket.gaierror()) == TRANSPORT_DNS_FAILURE
        assert transport_code_for(OSError(errno.ECONNRESET, "reset")) == TRANSPORT_CONNECTION_RESET

    def test_unrelated_exception(self):
        assert transport_code_for(ValueError("nope")) is None

    def test_all_codes_are_transient(self):
        assert TRANSIENT_TRANSPORT_CODES == {
            TRANSPORT_CONNECTION_REFUSED,
            TRANSPORT_TIMEOUT,
            TRANSPORT_DNS_FAILURE,
            TRANSPORT_CONNECTION_RESET,
        }


class TestWrapTransportError:
    def test_recognized_code_becomes_network_transient(self):
        cause = asyncio.TimeoutError()
        error = wrap_transport_error(cause, "https://api.test/summary")
        assert isinstance(error, NetworkTransientError)
        assert error.transport_code == TRANSPORT_TIMEOUT
        assert error.cause is cause

    def test_unrecognized_becomes_unknown(self):
        error = wrap_transport_error(aiohttp.ClientPayloadError("bad"), "https://api.test/x")
        assert isinstance(error, UnknownError)
        assert error.transport_code is None
