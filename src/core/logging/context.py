"""Context variables for structured logging."""

from contextvars import ContextVar

_event_id: ContextVar[str] = ContextVar("event_id", default="")
_collection: ContextVar[str] = ContextVar("collection", default="")
_stage_name: ContextVar[str] = ContextVar("stage_name", default="")
_worker_id: ContextVar[str] = ContextVar("worker_id", default="")


def set_log_context(
    event_id: str | None = None,
    collection: str | None = None,
    stage: str | None = None,
    worker_id: str | None = None,
) -> None:
    if event_id is not None:
        _event_id.set(event_id)
    if collection is not None:
        _collection.set(collection)
    if stage is not None:
        _stage_name.set(stage)
    if worker_id is not None:
        _worker_id.set(worker_id)


def get_log_context() -> dict[str, str]:
    return {
        "event_id": _event_id.get(),
        "collection": _collection.get(),
        "stage": _stage_name.get(),
        "worker_id": _worker_id.get(),
    }


def clear_log_context() -> None:
    """Reset per-event fields. worker_id is process-wide and survives."""
    _event_id.set("")
    _collection.set("")
    _stage_name.set("")
