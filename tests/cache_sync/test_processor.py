"""
Tests for ChangeEventProcessor.

End-to-end through decode -> validate -> enrich -> write with in-memory
doubles for the enrichment source, cache store and audit sink.
"""

import json
import logging

import pytest

from cache_sync.classifier import (
    REASON_NETWORK,
    REASON_SERVER_ERROR,
    REASON_TEST_DATA,
    REASON_UNKNOWN,
    REASON_VALIDATION,
)
from cache_sync.schemas.results import Classification, OutcomeStatus
from core.errors import (
    TRANSPORT_TIMEOUT,
    NetworkTransientError,
    NotFoundError,
    RetryableEventError,
    ServerError,
    ValidationError,
)
from core.logging.context import get_log_context
from tests.cache_sync.fakes import make_event, string_fields, structured_payload


def activity_event(**ids):
    return make_event(structured_payload(string_fields(**ids)), collection="feedEvents")


def profile_event(**ids):
    return make_event(structured_payload(string_fields(**ids)), collection="childProfiles")


# =============================================================================
# Scenarios
# =============================================================================


class TestScenarios:
    """Representative end-to-end flows."""

    @pytest.mark.asyncio
    async def test_a_activity_with_parent_writes_three_keys(self, processor, store, source):
        outcome = await processor.process(activity_event(parentId="p1", childId="c1"))

        assert outcome.status == OutcomeStatus.PROCESSED
        assert set(outcome.keys_written) == {"summary:c1", "daylog:c1", "parent:p1:child:c1"}
        assert store.entries["summary:c1"][1] == 86400
        assert store.entries["daylog:c1"][1] == 1800
        assert store.entries["parent:p1:child:c1"][1] == 3600

        combined = json.loads(store.entries["parent:p1:child:c1"][0])
        assert combined["last7daySummary"] == source.summary
        assert combined["currentDayLogs"] == source.current_logs

    @pytest.mark.asyncio
    async def test_b_activity_without_parent_writes_limited_key(self, processor, store, source):
        outcome = await processor.process(activity_event(childId="c1"))

        assert outcome.status == OutcomeStatus.PROCESSED
        assert outcome.keys_written == ("limited:child:c1:feedEvents",)
        assert "token" not in source.call_names()

        value, ttl = store.entries["limited:child:c1:feedEvents"]
        assert ttl == 3600
        assert json.loads(value)["rawFields"] == {"childId": "c1"}

    @pytest.mark.asyncio
    async def test_c_missing_child_is_terminal_and_audited(self, processor, store, audit_sink):
        outcome = await processor.process(activity_event(parentId="p1"))

        assert outcome.status == OutcomeStatus.FAILED_TERMINAL
        assert outcome.reason == REASON_VALIDATION
        assert store.entries == {}
        assert len(audit_sink.records) == 1
        assert audit_sink.records[0].error_kind == "ValidationError"

    @pytest.mark.asyncio
    async def test_d_profile_server_error_is_retryable(self, processor, store, source, audit_sink):
        source.profile_error = ServerError("Server error (500)", status_code=500)

        with pytest.raises(RetryableEventError) as exc_info:
            await processor.process(profile_event(parentId="p1", childId="c1"))

        assert exc_info.value.reason == REASON_SERVER_ERROR
        assert isinstance(exc_info.value.__cause__, ServerError)
        assert audit_sink.records == []
        assert store.entries == {}

    @pytest.mark.asyncio
    async def test_e_incomplete_profile_is_terminal(self, processor, store, source, audit_sink):
        source.profile = {"name": "Ada", "gender": "female"}

        outcome = await processor.process(profile_event(parentId="p1", childId="c1"))

        assert outcome.status == OutcomeStatus.FAILED_TERMINAL
        assert outcome.reason == REASON_UNKNOWN
        assert audit_sink.records[0].error_kind == "SchemaError"
        assert store.entries == {}

    @pytest.mark.asyncio
    async def test_profile_success(self, processor, store):
        outcome = await processor.process(profile_event(parentId="p1", childId="c1"))

        assert outcome.keys_written == ("profile:c1", "profile:parent:p1:child:c1")
        assert store.entries["profile:c1"][1] == 86400


# =============================================================================
# Properties
# =============================================================================


class TestDeletedEvents:

    @pytest.mark.asyncio
    async def test_deleted_is_skipped_without_side_effects(self, processor, store, source, audit_sink):
        name = "projects/p/databases/(default)/documents/feedEvents/doc1"
        payload = {"oldValue": {"name": name, "fields": string_fields(parentId="p1", childId="c1")}}

        outcome = await processor.process(make_event(payload))

        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == "deleted"
        assert source.calls == []
        assert store.set_calls == []
        assert audit_sink.records == []


class TestMissingChild:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fields", [{"parentId": "p1"}, {}])
    async def test_missing_child_always_terminal(self, processor, fields):
        event = make_event(structured_payload(string_fields(**fields)))

        outcome = await processor.process(event)

        assert outcome.status == OutcomeStatus.FAILED_TERMINAL
        assert outcome.reason == REASON_VALIDATION


class TestIdempotency:

    @pytest.mark.asyncio
    async def test_redelivery_converges_on_same_keys(self, processor, store):
        first = make_event(structured_payload(string_fields(parentId="p1", childId="c1")))
        again = make_event(
            structured_payload(string_fields(parentId="p1", childId="c1")), attempt=2
        )

        await processor.process(first)
        snapshot = dict(store.entries)
        await processor.process(again)

        assert store.entries.keys() == snapshot.keys()
        assert store.entries == snapshot


# =============================================================================
# Failure handling
# =============================================================================


class TestFailureHandling:

    @pytest.mark.asyncio
    async def test_undecodable_payload_is_terminal(self, processor, audit_sink):
        outcome = await processor.process(make_event(b"\x00\x01\x02\xff"))

        assert outcome.status == OutcomeStatus.FAILED_TERMINAL
        assert outcome.reason == REASON_VALIDATION
        assert audit_sink.records[0].error_kind == "DecodeError"

    @pytest.mark.asyncio
    async def test_test_collection_not_found_is_test_data(self, processor, mock_client, audit_sink):
        async def missing_profile(child_id, token):
            raise NotFoundError("Not found (404)", status_code=404)

        mock_client.get_profile = missing_profile
        processor.router.profile_collections = frozenset({"childProfiles", "testEvents"})
        event = make_event(
            structured_payload(string_fields(parentId="p1", childId="c1")), collection="testEvents"
        )

        outcome = await processor.process(event)

        assert outcome.reason == REASON_TEST_DATA
        assert audit_sink.records[0].reason == REASON_TEST_DATA

    @pytest.mark.asyncio
    async def test_cache_write_failure_is_retryable(self, processor, store, audit_sink):
        store.fail_with = NetworkTransientError("Cache store timeout", transport_code=TRANSPORT_TIMEOUT)

        with pytest.raises(RetryableEventError) as exc_info:
            await processor.process(activity_event(parentId="p1", childId="c1"))

        assert exc_info.value.reason == REASON_NETWORK
        assert audit_sink.records == []

    @pytest.mark.asyncio
    async def test_final_attempt_logs_error(self, processor, source, caplog):
        source.profile_error = ServerError("Server error (503)", status_code=503)
        event = make_event(
            structured_payload(string_fields(parentId="p1", childId="c1")),
            collection="childProfiles",
            attempt=5,
        )

        with caplog.at_level(logging.WARNING, logger="cache_sync.processor"):
            with pytest.raises(RetryableEventError):
                await processor.process(event)

        assert any(
            r.levelno == logging.ERROR and "final delivery attempt" in r.getMessage()
            for r in caplog.records
        )

    @pytest.mark.asyncio
    async def test_classifier_consulted_once(self, processor):
        seen = []

        class RecordingClassifier:
            def classify(self, error, subject=None):
                seen.append(type(error))
                return Classification.terminal("validation")

        processor.classifier = RecordingClassifier()

        await processor.process(activity_event(parentId="p1"))

        assert seen == [ValidationError]

    @pytest.mark.asyncio
    async def test_audit_failure_still_acknowledges(self, processor, audit_sink):
        audit_sink.fail = True

        outcome = await processor.process(activity_event(parentId="p1"))

        assert outcome.status == OutcomeStatus.FAILED_TERMINAL


class TestLogContext:

    @pytest.mark.asyncio
    async def test_context_cleared_after_event(self, processor):
        await processor.process(activity_event(parentId="p1", childId="c1"))

        ctx = get_log_context()
        assert ctx["event_id"] == ""
        assert ctx["stage"] == ""
