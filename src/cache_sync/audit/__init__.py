"""Terminal-failure audit: recorder and sinks."""

from cache_sync.audit.recorder import FailureRecorder
from cache_sync.audit.sinks import AuditSink, JsonFileAuditSink

__all__ = ["FailureRecorder", "AuditSink", "JsonFileAuditSink"]
