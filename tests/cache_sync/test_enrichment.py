"""
Tests for EnrichmentService.

Activity collections degrade per call; profile collections are strict.
"""

import asyncio

import pytest

from cache_sync.enrichment import EnrichmentService, empty_current_logs, empty_summary
from cache_sync.schemas.fields import DocumentFields, StringValue
from cache_sync.schemas.results import ActivityResult, Identifiers, LimitedResult, ProfileResult
from core.errors import (
    AuthError,
    NetworkTransientError,
    NotFoundError,
    SchemaError,
    ServerError,
    ValidationError,
)
from tests.cache_sync.fakes import StubEnrichmentSource

FIELDS = DocumentFields({"childId": StringValue("c1"), "note": StringValue("bottle")})


class HandshakeSource(StubEnrichmentSource):
    """Summary waits until the current-logs call has started."""

    def __init__(self):
        super().__init__()
        self.logs_started = asyncio.Event()
        self.logs_finished = False

    async def get_summary(self, parent_id, child_id, token):
        await self.logs_started.wait()
        return await super().get_summary(parent_id, child_id, token)

    async def get_current_logs(self, child_id, token):
        self.logs_started.set()
        await asyncio.sleep(0.01)
        result = await super().get_current_logs(child_id, token)
        self.logs_finished = True
        return result


@pytest.fixture
def service(source, router, mock_client):
    return EnrichmentService(source, router, mock_client=mock_client)


# =============================================================================
# Activity mode
# =============================================================================


class TestActivityEnrichment:

    @pytest.mark.asyncio
    async def test_full_enrichment(self, service, source):
        result = await service.enrich("feedEvents", Identifiers("c1", "p1"), FIELDS)

        assert isinstance(result, ActivityResult)
        assert result.summary == source.summary
        assert result.current_logs == source.current_logs
        assert result.event_source == "feedEvents"
        assert source.call_names()[0] == "token"
        assert sorted(source.call_names()[1:]) == ["current-logs", "summary"]

    @pytest.mark.asyncio
    async def test_without_parent_returns_raw_fields(self, service, source):
        result = await service.enrich("feedEvents", Identifiers("c1"), FIELDS)

        assert isinstance(result, LimitedResult)
        assert result.raw_fields == FIELDS
        assert source.calls == []

    @pytest.mark.asyncio
    async def test_token_failure_degrades_to_raw_fields(self, service, source):
        source.token_error = NotFoundError("Not found (404)", status_code=404)

        result = await service.enrich("feedEvents", Identifiers("c1", "p1"), FIELDS)

        assert isinstance(result, LimitedResult)
        assert source.call_names() == ["token"]

    @pytest.mark.asyncio
    async def test_summary_failure_uses_empty_summary(self, service, source):
        source.summary_error = ServerError("Server error (503)", status_code=503)

        result = await service.enrich("feedEvents", Identifiers("c1", "p1"), FIELDS)

        assert isinstance(result, ActivityResult)
        assert result.summary == empty_summary()
        assert result.current_logs == source.current_logs

    @pytest.mark.asyncio
    async def test_logs_failure_uses_empty_logs(self, service, source):
        source.logs_error = NetworkTransientError("timeout", transport_code="timeout")

        result = await service.enrich("feedEvents", Identifiers("c1", "p1"), FIELDS)

        assert result.current_logs == empty_current_logs()
        assert result.current_logs == {"sleep": [], "feed": [], "diaper": [], "pumping": []}
        assert result.summary == source.summary

    @pytest.mark.asyncio
    async def test_both_calls_fail(self, service, source):
        source.summary_error = ServerError("down", status_code=500)
        source.logs_error = ServerError("down", status_code=500)

        result = await service.enrich("feedEvents", Identifiers("c1", "p1"), FIELDS)

        assert result.summary == []
        assert result.current_logs == empty_current_logs()

    @pytest.mark.asyncio
    async def test_non_pipeline_errors_propagate(self, service, source):
        source.summary_error = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            await service.enrich("feedEvents", Identifiers("c1", "p1"), FIELDS)

    @pytest.mark.asyncio
    async def test_malformed_summary_body_uses_empty_summary(self, service, source):
        source.summary_error = SchemaError("Response is not valid UTF-8 JSON: /summary")

        result = await service.enrich("feedEvents", Identifiers("c1", "p1"), FIELDS)

        assert result.summary == []
        assert result.current_logs == source.current_logs

    @pytest.mark.asyncio
    async def test_summary_and_logs_run_concurrently(self, router, mock_client):
        source = HandshakeSource()
        service = EnrichmentService(source, router, mock_client=mock_client)

        # Sequential fetches would leave the summary waiting forever
        result = await asyncio.wait_for(
            service.enrich("feedEvents", Identifiers("c1", "p1"), FIELDS), timeout=2.0
        )

        assert result.summary == source.summary
        assert result.current_logs == source.current_logs

    @pytest.mark.asyncio
    async def test_sibling_call_finishes_before_failure_propagates(self, router, mock_client):
        source = HandshakeSource()
        source.summary_error = RuntimeError("bug")
        service = EnrichmentService(source, router, mock_client=mock_client)

        with pytest.raises(RuntimeError):
            await service.enrich("feedEvents", Identifiers("c1", "p1"), FIELDS)

        assert source.logs_finished

    @pytest.mark.asyncio
    async def test_fields_default_to_empty(self, service):
        result = await service.enrich("feedEvents", Identifiers("c1"))
        assert result.raw_fields == DocumentFields()


# =============================================================================
# Profile mode
# =============================================================================


class TestProfileEnrichment:

    @pytest.mark.asyncio
    async def test_profile(self, service, source):
        result = await service.enrich("childProfiles", Identifiers("c1", "p1"))

        assert isinstance(result, ProfileResult)
        assert result.profile["name"] == "Ada"
        assert source.call_names() == ["token", "profile"]

    @pytest.mark.asyncio
    async def test_requires_parent(self, service, source):
        with pytest.raises(ValidationError, match="requires parentId"):
            await service.enrich("childProfiles", Identifiers("c1"))
        assert source.calls == []

    @pytest.mark.asyncio
    async def test_token_failure_propagates(self, service, source):
        source.token_error = AuthError("Unauthorized (401)", status_code=401)

        with pytest.raises(AuthError):
            await service.enrich("childProfiles", Identifiers("c1", "p1"))

    @pytest.mark.asyncio
    async def test_profile_failure_propagates(self, service, source):
        source.profile_error = ServerError("Server error (502)", status_code=502)

        with pytest.raises(ServerError):
            await service.enrich("childProfiles", Identifiers("c1", "p1"))

    @pytest.mark.asyncio
    async def test_incomplete_profile(self, service, source):
        source.profile = {"name": "Ada", "dateOfBirth": "", "gender": None}

        with pytest.raises(SchemaError, match="dateOfBirth, gender"):
            await service.enrich("childProfiles", Identifiers("c1", "p1"))


# =============================================================================
# Test collections
# =============================================================================


class TestMockSource:

    @pytest.mark.asyncio
    async def test_test_collection_uses_mock(self, service, source, mock_client):
        result = await service.enrich("testEvents", Identifiers("c1", "p1"), FIELDS)

        assert isinstance(result, ActivityResult)
        assert result.summary["testMode"] is True
        assert result.current_logs["testMode"] is True
        assert source.calls == []
        assert ("token", "p1") in mock_client.calls

    @pytest.mark.asyncio
    async def test_without_mock_uses_real_source(self, source, router):
        service = EnrichmentService(source, router)

        await service.enrich("testEvents", Identifiers("c1", "p1"), FIELDS)

        assert "token" in source.call_names()
