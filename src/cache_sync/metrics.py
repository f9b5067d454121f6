"""
Prometheus metrics for the cache-sync pipeline.

Focused on essential metrics:
- Events by collection and outcome
- Classifications by reason
- Cache writes by record kind
- Enrichment call latency by endpoint
- Audit record writes
"""

from prometheus_client import Counter, Histogram

# =============================================================================
# Core Metrics
# =============================================================================

events_processed_counter = Counter(
    "cache_sync_events_total",
    "Total change events handled, by collection and outcome",
    labelnames=["collection", "outcome"],
)

event_processing_duration_seconds = Histogram(
    "cache_sync_event_duration_seconds",
    "Time spent processing one change event",
    labelnames=["collection"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

classifications_counter = Counter(
    "cache_sync_classifications_total",
    "Failures classified, by reason and retryability",
    labelnames=["reason", "retryable"],
)

cache_writes_counter = Counter(
    "cache_sync_cache_writes_total",
    "Cache keys written, by record kind",
    labelnames=["record_kind"],
)

enrichment_call_duration_seconds = Histogram(
    "cache_sync_enrichment_call_duration_seconds",
    "Latency of outbound enrichment calls",
    labelnames=["endpoint", "outcome"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

audit_records_counter = Counter(
    "cache_sync_audit_records_total",
    "Terminal-failure audit records, by result",
    labelnames=["result"],
)


# =============================================================================
# Convenience Functions
# =============================================================================


def record_event(collection: str, outcome: str, duration_seconds: float) -> None:
    """Record a handled event."""
    events_processed_counter.labels(collection=collection, outcome=outcome).inc()
    event_processing_duration_seconds.labels(collection=collection).observe(duration_seconds)


def record_classification(reason: str, retryable: bool) -> None:
    classifications_counter.labels(
        reason=reason, retryable="true" if retryable else "false"
    ).inc()


def record_cache_write(record_kind: str) -> None:
    cache_writes_counter.labels(record_kind=record_kind).inc()


def record_enrichment_call(endpoint: str, outcome: str, duration_seconds: float) -> None:
    enrichment_call_duration_seconds.labels(endpoint=endpoint, outcome=outcome).observe(
        duration_seconds
    )


def record_audit(success: bool) -> None:
    audit_records_counter.labels(result="written" if success else "failed").inc()


__all__ = [
    # Metrics
    "events_processed_counter",
    "event_processing_duration_seconds",
    "classifications_counter",
    "cache_writes_counter",
    "enrichment_call_duration_seconds",
    "audit_records_counter",
    # Helper functions
    "record_event",
    "record_classification",
    "record_cache_write",
    "record_enrichment_call",
    "record_audit",
]
