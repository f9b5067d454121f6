"""
Change-event processor.

Runs one delivered event through decode -> validate -> enrich -> write.
Every failure is classified exactly once:

- retryable: re-raised as RetryableEventError so the broker redelivers
- terminal: recorded for audit and acknowledged

Deleted documents are acknowledged without enrichment or cache writes.
"""

import logging
import time

from cache_sync import metrics
from cache_sync.audit.recorder import FailureRecorder
from cache_sync.cache.writer import CacheWriter
from cache_sync.classifier import PipelineErrorClassifier
from cache_sync.collections import CollectionRouter
from cache_sync.decoder import EventDecoder
from cache_sync.enrichment import EnrichmentService
from cache_sync.schemas.events import ChangeEvent, ChangeKind
from cache_sync.schemas.results import OutcomeStatus, ProcessingOutcome
from cache_sync.validator import IdentifierValidator
from core.errors import RetryableEventError
from core.logging.context import clear_log_context, set_log_context
from core.types import ErrorClassifier

logger = logging.getLogger(__name__)

OUTCOME_RETRYABLE = "retryable"


class ChangeEventProcessor:
    """Processes change events under at-least-once delivery."""

    def __init__(
        self,
        enrichment: EnrichmentService,
        writer: CacheWriter,
        recorder: FailureRecorder,
        router: CollectionRouter,
        decoder: EventDecoder | None = None,
        validator: IdentifierValidator | None = None,
        classifier: ErrorClassifier | None = None,
        max_delivery_attempts: int = 5,
    ):
        self.enrichment = enrichment
        self.writer = writer
        self.recorder = recorder
        self.router = router
        self.decoder = decoder or EventDecoder()
        self.validator = validator or IdentifierValidator()
        self.classifier = classifier or PipelineErrorClassifier()
        self.max_delivery_attempts = max_delivery_attempts

    async def process(self, event: ChangeEvent) -> ProcessingOutcome:
        """
        Process one event.

        Returns:
            Outcome for acknowledged events (processed, skipped, or terminal)

        Raises:
            RetryableEventError: The failure is transient; the event must be redelivered
        """
        set_log_context(event_id=event.event_id, collection=event.collection_name)
        start = time.perf_counter()
        status = OUTCOME_RETRYABLE
        try:
            try:
                outcome = await self._run(event)
            except Exception as e:
                outcome = await self._handle_failure(event, e)
            status = outcome.status.value
            return outcome
        finally:
            metrics.record_event(event.collection_name, status, time.perf_counter() - start)
            clear_log_context()

    async def _run(self, event: ChangeEvent) -> ProcessingOutcome:
        set_log_context(stage="decode")
        document = self.decoder.decode_event(event.raw_payload)

        if document.change_kind == ChangeKind.DELETED:
            logger.info(
                "Document deleted; skipping",
                extra={"change_kind": document.change_kind.value, "subject_path": event.subject_path},
            )
            return ProcessingOutcome(OutcomeStatus.SKIPPED, event.event_id, reason="deleted")

        set_log_context(stage="validate")
        identifiers = self.validator.validate(document.fields)

        set_log_context(stage="enrich")
        mode = self.router.mode_for(event.collection_name)
        logger.info(
            "Processing change event",
            extra={
                "event_type": event.event_type,
                "change_kind": document.change_kind.value,
                "delivery_attempt": event.delivery_attempt,
                "parent_id": identifiers.parent_id,
                "child_id": identifiers.child_id,
                "pipeline_mode": mode.value,
                "decode_strategy": document.strategy,
            },
        )
        result = await self.enrichment.enrich(event.collection_name, identifiers, document.fields)

        set_log_context(stage="write")
        keys = await self.writer.write(mode, identifiers, result)

        return ProcessingOutcome(
            OutcomeStatus.PROCESSED, event.event_id, keys_written=tuple(keys)
        )

    async def _handle_failure(self, event: ChangeEvent, error: Exception) -> ProcessingOutcome:
        classification = self.classifier.classify(error, event.subject_path)
        metrics.record_classification(classification.reason, classification.retryable)

        log_extra = {
            "subject_path": event.subject_path,
            "delivery_attempt": event.delivery_attempt,
            "max_delivery_attempts": self.max_delivery_attempts,
            "error_kind": type(error).__name__,
            "error_message": str(error),
            "error_reason": classification.reason,
            "retryable": classification.retryable,
        }

        if classification.retryable:
            if event.delivery_attempt >= self.max_delivery_attempts:
                logger.error(
                    "Retryable failure on final delivery attempt; broker will dead-letter",
                    extra=log_extra,
                )
            else:
                logger.warning("Retryable failure; event will be redelivered", extra=log_extra)
            raise RetryableEventError(
                f"Retryable failure ({classification.reason})",
                reason=classification.reason,
                cause=error,
                context={"event_id": event.event_id},
            ) from error

        logger.warning("Terminal failure; acknowledging event", extra=log_extra)
        await self.recorder.record(event, classification, error)
        return ProcessingOutcome(
            OutcomeStatus.FAILED_TERMINAL, event.event_id, reason=classification.reason
        )


__all__ = ["ChangeEventProcessor"]
