"""
Cache writer: key scheme, TTLs and value layout for enrichment results.

Key scheme (``P`` is the environment prefix, empty in production):

    summary            P summary:{child}                          86400s
    daylog             P daylog:{child}                           1800s
    combined activity  P parent:{parent}:child:{child}            3600s
    limited            P limited:child:{child}:{collection}       3600s
    profile            P profile:{child}                          86400s
    profile+parent     P profile:parent:{parent}:child:{child}    86400s

Each value carries ``expiresAt`` (epoch milliseconds) mirroring its TTL.
Writes are plain overwrites, so redelivered events converge on the same
key set.
"""

import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from cache_sync import metrics
from cache_sync.cache.store import CacheStore
from cache_sync.collections import CollectionRouter
from cache_sync.schemas.results import (
    ActivityResult,
    CacheRecord,
    EnrichmentResult,
    Identifiers,
    LimitedResult,
    PipelineMode,
    ProfileResult,
)
from core.utils.json_serializers import json_serializer

logger = logging.getLogger(__name__)

SUMMARY_TTL_SECONDS = 86400
DAYLOG_TTL_SECONDS = 1800
COMBINED_TTL_SECONDS = 3600
PROFILE_TTL_SECONDS = 86400

KIND_SUMMARY = "summary"
KIND_DAYLOG = "daylog"
KIND_COMBINED = "combined"
KIND_LIMITED = "limited"
KIND_PROFILE = "profile"
KIND_PROFILE_PARENT = "profile_parent"


def _utc_now() -> datetime:
    return datetime.now(UTC)


def summary_key(prefix: str, child_id: str) -> str:
    return f"{prefix}summary:{child_id}"


def daylog_key(prefix: str, child_id: str) -> str:
    return f"{prefix}daylog:{child_id}"


def combined_key(prefix: str, parent_id: str, child_id: str) -> str:
    return f"{prefix}parent:{parent_id}:child:{child_id}"


def limited_key(prefix: str, child_id: str, collection_name: str) -> str:
    return f"{prefix}limited:child:{child_id}:{collection_name}"


def profile_key(prefix: str, child_id: str) -> str:
    return f"{prefix}profile:{child_id}"


def profile_parent_key(prefix: str, parent_id: str, child_id: str) -> str:
    return f"{prefix}profile:parent:{parent_id}:child:{child_id}"


class CacheWriter:
    """Turns an enrichment result into cache records and writes them."""

    def __init__(
        self,
        store: CacheStore,
        router: CollectionRouter,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.store = store
        self.router = router
        self.clock = clock

    def build_records(
        self, mode: PipelineMode, identifiers: Identifiers, result: EnrichmentResult
    ) -> list[CacheRecord]:
        """Compute the records for one result without touching the store."""
        now = self.clock()
        prefix = self.router.key_prefix(result.event_source)

        def expires_at(ttl_seconds: int) -> int:
            return int(now.timestamp() * 1000) + ttl_seconds * 1000

        child_id = identifiers.child_id
        parent_id = identifiers.parent_id
        last_updated = now.isoformat()

        if mode == PipelineMode.PROFILE:
            if not isinstance(result, ProfileResult):
                raise ValueError(f"profile mode cannot write {type(result).__name__}")
            if not parent_id:
                raise ValueError("profile records require parentId")
            return [
                CacheRecord(
                    key=profile_key(prefix, child_id),
                    value={"data": result.profile, "expiresAt": expires_at(PROFILE_TTL_SECONDS)},
                    ttl_seconds=PROFILE_TTL_SECONDS,
                    kind=KIND_PROFILE,
                ),
                CacheRecord(
                    key=profile_parent_key(prefix, parent_id, child_id),
                    value={
                        "profile": result.profile,
                        "lastUpdated": last_updated,
                        "eventSource": result.event_source,
                        "expiresAt": expires_at(PROFILE_TTL_SECONDS),
                    },
                    ttl_seconds=PROFILE_TTL_SECONDS,
                    kind=KIND_PROFILE_PARENT,
                ),
            ]

        if isinstance(result, LimitedResult):
            # Degraded data never overwrites the combined parent/child entry
            return [
                CacheRecord(
                    key=limited_key(prefix, child_id, result.event_source),
                    value={
                        "rawFields": result.raw_fields.to_plain(),
                        "lastUpdated": last_updated,
                        "eventSource": result.event_source,
                        "expiresAt": expires_at(COMBINED_TTL_SECONDS),
                    },
                    ttl_seconds=COMBINED_TTL_SECONDS,
                    kind=KIND_LIMITED,
                ),
            ]

        if not isinstance(result, ActivityResult):
            raise ValueError(f"activity mode cannot write {type(result).__name__}")

        if parent_id:
            activity_key, activity_kind = combined_key(prefix, parent_id, child_id), KIND_COMBINED
        else:
            activity_key = limited_key(prefix, child_id, result.event_source)
            activity_kind = KIND_LIMITED

        return [
            CacheRecord(
                key=summary_key(prefix, child_id),
                value={"data": result.summary, "expiresAt": expires_at(SUMMARY_TTL_SECONDS)},
                ttl_seconds=SUMMARY_TTL_SECONDS,
                kind=KIND_SUMMARY,
            ),
            CacheRecord(
                key=daylog_key(prefix, child_id),
                value={"data": result.current_logs, "expiresAt": expires_at(DAYLOG_TTL_SECONDS)},
                ttl_seconds=DAYLOG_TTL_SECONDS,
                kind=KIND_DAYLOG,
            ),
            CacheRecord(
                key=activity_key,
                value={
                    "last7daySummary": result.summary,
                    "currentDayLogs": result.current_logs,
                    "lastUpdated": last_updated,
                    "eventSource": result.event_source,
                    "expiresAt": expires_at(COMBINED_TTL_SECONDS),
                },
                ttl_seconds=COMBINED_TTL_SECONDS,
                kind=activity_kind,
            ),
        ]

    async def write(
        self, mode: PipelineMode, identifiers: Identifiers, result: EnrichmentResult
    ) -> list[str]:
        """
        Write every record for the result. Returns the keys written.

        Each key is one atomic set-with-expiry. Store failures propagate;
        keys written before the failure stay written.
        """
        records = self.build_records(mode, identifiers, result)
        written: list[str] = []
        for record in records:
            payload = json.dumps(record.value, default=json_serializer)
            await self.store.set_with_ttl(record.key, payload, record.ttl_seconds)
            written.append(record.key)
            metrics.record_cache_write(record.kind)
            logger.debug(
                "Cache key written",
                extra={
                    "cache_key": record.key,
                    "ttl_seconds": record.ttl_seconds,
                    "record_kind": record.kind,
                },
            )

        logger.info(
            "Cache updated",
            extra={
                "child_id": identifiers.child_id,
                "parent_id": identifiers.parent_id,
                "pipeline_mode": mode.value,
                "cache_keys": written,
            },
        )
        return written


__all__ = [
    "CacheWriter",
    "summary_key",
    "daylog_key",
    "combined_key",
    "limited_key",
    "profile_key",
    "profile_parent_key",
    "SUMMARY_TTL_SECONDS",
    "DAYLOG_TTL_SECONDS",
    "COMBINED_TTL_SECONDS",
    "PROFILE_TTL_SECONDS",
]
