"""
Enrichment of validated identifiers.

Activity collections fetch a multi-day summary and the current-period logs
concurrently; each call degrades to an empty default on failure. Without a
parentId or credential the activity path returns the raw decoded fields
instead. Profile collections require a credential and a complete profile.
"""

import asyncio
import logging
from typing import Any, Protocol

from cache_sync.collections import CollectionRouter
from cache_sync.schemas.fields import DocumentFields
from cache_sync.schemas.results import (
    ActivityResult,
    EnrichmentResult,
    Identifiers,
    LimitedResult,
    PipelineMode,
    ProfileResult,
)
from core.errors import PipelineError, SchemaError, ValidationError

logger = logging.getLogger(__name__)

LOG_TYPES = ("sleep", "feed", "diaper", "pumping")
REQUIRED_PROFILE_FIELDS = ("name", "dateOfBirth", "gender")


def empty_summary() -> list[Any]:
    return []


def empty_current_logs() -> dict[str, list[Any]]:
    return {log_type: [] for log_type in LOG_TYPES}


class EnrichmentSource(Protocol):
    """Lookups the enrichment service depends on."""

    async def get_token(self, parent_id: str) -> str: ...

    async def get_summary(self, parent_id: str | None, child_id: str, token: str) -> Any: ...

    async def get_current_logs(self, child_id: str, token: str) -> dict[str, Any]: ...

    async def get_profile(self, child_id: str, token: str) -> dict[str, Any]: ...


class EnrichmentService:
    """Fans out to the enrichment source for one event's identifiers."""

    def __init__(
        self,
        client: EnrichmentSource,
        router: CollectionRouter,
        mock_client: EnrichmentSource | None = None,
    ):
        self.client = client
        self.router = router
        self.mock_client = mock_client

    def _source_for(self, collection_name: str) -> EnrichmentSource:
        if self.mock_client is not None and self.router.is_test_collection(collection_name):
            logger.info(
                "Test collection: using mock enrichment data",
                extra={"pipeline_mode": self.router.mode_for(collection_name).value},
            )
            return self.mock_client
        return self.client

    async def enrich(
        self,
        collection_name: str,
        identifiers: Identifiers,
        fields: DocumentFields | None = None,
    ) -> EnrichmentResult:
        """
        Enrich one event.

        Args:
            collection_name: Source collection; selects pipeline mode and source
            identifiers: Validated identifiers
            fields: Decoded document, cached as-is on the reduced path

        Returns:
            ActivityResult, ProfileResult or LimitedResult

        Raises:
            ValidationError: Profile collection without parentId
            SchemaError: Profile response missing a required field
            PipelineError: Credential or profile lookup failure (profile mode)
        """
        mode = self.router.mode_for(collection_name)
        source = self._source_for(collection_name)

        if mode == PipelineMode.PROFILE:
            return await self._enrich_profile(source, collection_name, identifiers)
        return await self._enrich_activity(
            source, collection_name, identifiers, fields or DocumentFields()
        )

    async def _enrich_profile(
        self, source: EnrichmentSource, collection_name: str, identifiers: Identifiers
    ) -> ProfileResult:
        if not identifiers.parent_id:
            raise ValidationError(
                "profile requires parentId",
                context={"child_id": identifiers.child_id},
            )

        token = await source.get_token(identifiers.parent_id)
        profile = await source.get_profile(identifiers.child_id, token)

        missing = [name for name in REQUIRED_PROFILE_FIELDS if profile.get(name) in (None, "")]
        if missing:
            raise SchemaError(
                f"profile response lacks fields: {', '.join(missing)}",
                context={"child_id": identifiers.child_id},
            )

        return ProfileResult(profile=profile, event_source=collection_name)

    async def _enrich_activity(
        self,
        source: EnrichmentSource,
        collection_name: str,
        identifiers: Identifiers,
        fields: DocumentFields,
    ) -> ActivityResult | LimitedResult:
        token = await self._credential_or_none(source, identifiers)
        if token is None:
            return LimitedResult(raw_fields=fields, event_source=collection_name)

        # Both calls always run to completion before any failure propagates
        summary, current_logs = await asyncio.gather(
            self._summary_or_default(source, identifiers, token),
            self._current_logs_or_default(source, identifiers, token),
            return_exceptions=True,
        )
        for result in (summary, current_logs):
            if isinstance(result, BaseException):
                raise result
        return ActivityResult(
            summary=summary,
            current_logs=current_logs,
            event_source=collection_name,
        )

    @staticmethod
    async def _credential_or_none(
        source: EnrichmentSource, identifiers: Identifiers
    ) -> str | None:
        if not identifiers.parent_id:
            return None
        try:
            return await source.get_token(identifiers.parent_id)
        except PipelineError as e:
            logger.warning(
                "Credential lookup failed; continuing in degraded mode",
                extra={
                    "parent_id": identifiers.parent_id,
                    "child_id": identifiers.child_id,
                    "error_kind": e.kind,
                    "error_message": str(e),
                },
            )
            return None

    @staticmethod
    async def _summary_or_default(
        source: EnrichmentSource, identifiers: Identifiers, token: str
    ) -> Any:
        try:
            return await source.get_summary(identifiers.parent_id, identifiers.child_id, token)
        except PipelineError as e:
            logger.warning(
                "Summary lookup failed; using empty summary",
                extra={
                    "child_id": identifiers.child_id,
                    "api_endpoint": "summary",
                    "error_kind": e.kind,
                    "error_message": str(e),
                },
            )
            return empty_summary()

    @staticmethod
    async def _current_logs_or_default(
        source: EnrichmentSource, identifiers: Identifiers, token: str
    ) -> dict[str, Any]:
        try:
            return await source.get_current_logs(identifiers.child_id, token)
        except PipelineError as e:
            logger.warning(
                "Current-log lookup failed; using empty logs",
                extra={
                    "child_id": identifiers.child_id,
                    "api_endpoint": "current-logs",
                    "error_kind": e.kind,
                    "error_message": str(e),
                },
            )
            return empty_current_logs()


__all__ = [
    "EnrichmentService",
    "EnrichmentSource",
    "empty_summary",
    "empty_current_logs",
    "LOG_TYPES",
    "REQUIRED_PROFILE_FIELDS",
]
