"""
Change-event cache synchronization pipeline.

Decodes document change events, validates identifiers, enriches them from
the enrichment API and materializes the results into a TTL-bounded Redis
cache. Transient failures are redelivered; terminal failures are
acknowledged and recorded for audit.

Modules:
    decoder: Payload decoding (structured, JSON, binary fallback)
    validator: Identifier extraction
    enrichment: Activity/profile enrichment with degraded modes
    classifier: Retryable vs terminal classification
    cache: Redis store and cache record writer
    audit: Terminal-failure recorder
    processor: Per-event orchestration
    server: HTTP event receiver
"""

__version__ = "1.0.0"
