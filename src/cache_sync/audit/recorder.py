"""Failure recorder for terminally failed events."""

import logging

from cache_sync import metrics
from cache_sync.audit.sinks import AuditSink
from cache_sync.schemas.events import ChangeEvent
from cache_sync.schemas.results import Classification, FailureRecord

logger = logging.getLogger(__name__)


class FailureRecorder:
    """
    Best-effort audit of terminal failures.

    A failed append is logged and swallowed: the event has already been
    judged terminal and must stay acknowledged.
    """

    def __init__(self, sink: AuditSink):
        self.sink = sink

    @staticmethod
    def build_record(
        event: ChangeEvent, classification: Classification, error: BaseException
    ) -> FailureRecord:
        return FailureRecord(
            event_id=event.event_id,
            collection_name=event.collection_name,
            subject_path=event.subject_path,
            error_kind=type(error).__name__,
            message=str(error),
            reason=classification.reason,
            delivery_attempt=event.delivery_attempt,
        )

    async def record(
        self, event: ChangeEvent, classification: Classification, error: BaseException
    ) -> None:
        record = self.build_record(event, classification, error)
        try:
            await self.sink.append(record)
        except Exception as e:
            metrics.record_audit(success=False)
            logger.error(
                "Failed to write failure audit record",
                exc_info=True,
                extra={
                    "event_id": event.event_id,
                    "error_kind": record.error_kind,
                    "error_reason": record.reason,
                    "error_message": str(e),
                },
            )
            return

        metrics.record_audit(success=True)
        logger.info(
            "Failure audit record written",
            extra={
                "event_id": event.event_id,
                "error_kind": record.error_kind,
                "error_reason": record.reason,
            },
        )


__all__ = ["FailureRecorder"]
