"""Local JSON-lines audit sink.

Appends one JSON object per terminal failure to a file named for the audit
collection. Records are never read back by the pipeline.

Storage structure:
    storage_path/collection.jsonl

Example:
    ./data/audit/failure_audit.jsonl
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Protocol

from cache_sync.schemas.results import FailureRecord
from core.utils.json_serializers import json_serializer

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    """Append-only durable store for failure records."""

    async def append(self, record: FailureRecord) -> None: ...


class JsonFileAuditSink:
    """Local filesystem JSON-lines implementation of the audit sink."""

    def __init__(self, storage_path: str, collection: str = "failure_audit"):
        self.storage_path = Path(storage_path)
        self.collection = collection
        self.storage_path.mkdir(parents=True, exist_ok=True)
        self.file_path = self.storage_path / f"{collection}.jsonl"
        logger.info(
            "Initialized JSON audit sink",
            extra={"audit_path": str(self.file_path), "audit_collection": collection},
        )

    def _append_line(self, line: str) -> None:
        with open(self.file_path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    async def append(self, record: FailureRecord) -> None:
        line = json.dumps(record.model_dump(mode="json"), default=json_serializer)
        await asyncio.to_thread(self._append_line, line)


__all__ = ["AuditSink", "JsonFileAuditSink"]
