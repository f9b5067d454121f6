"""Shared fixtures for cache-sync pipeline tests."""

import pytest

from cache_sync.audit.recorder import FailureRecorder
from cache_sync.cache.writer import CacheWriter
from cache_sync.collections import CollectionRouter
from cache_sync.enrichment import EnrichmentService
from cache_sync.mock_client import MockEnrichmentClient
from cache_sync.processor import ChangeEventProcessor
from tests.cache_sync.fakes import (
    FIXED_NOW,
    InMemoryAuditSink,
    InMemoryCacheStore,
    StubEnrichmentSource,
)


@pytest.fixture
def router() -> CollectionRouter:
    return CollectionRouter(
        activity_collections=["feedEvents", "sleepEvents"],
        profile_collections=["childProfiles"],
        test_collections=["testEvents"],
    )


@pytest.fixture
def store() -> InMemoryCacheStore:
    return InMemoryCacheStore()


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def source() -> StubEnrichmentSource:
    return StubEnrichmentSource()


@pytest.fixture
def mock_client() -> MockEnrichmentClient:
    return MockEnrichmentClient()


@pytest.fixture
def writer(store, router) -> CacheWriter:
    return CacheWriter(store, router, clock=lambda: FIXED_NOW)


@pytest.fixture
def processor(source, mock_client, router, writer, audit_sink) -> ChangeEventProcessor:
    return ChangeEventProcessor(
        enrichment=EnrichmentService(source, router, mock_client=mock_client),
        writer=writer,
        recorder=FailureRecorder(audit_sink),
        router=router,
        max_delivery_attempts=5,
    )
