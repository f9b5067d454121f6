"""Shared JSON serialization utilities for type-safe JSON encoding."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel


def _serialize_known_type(obj: Any) -> tuple[bool, Any]:
    """Try to serialize by known type. Returns (handled, result)."""
    if isinstance(obj, (datetime, date)):
        return True, obj.isoformat()
    if isinstance(obj, Decimal):
        return True, float(obj)
    if isinstance(obj, Path):
        return True, str(obj)
    if isinstance(obj, Enum):
        return True, obj.value
    if isinstance(obj, BaseModel):
        return True, obj.model_dump(mode="json")
    if isinstance(obj, (bytes, bytearray)):
        return True, obj.decode("utf-8", errors="replace")
    return False, None


def json_serializer(obj: Any) -> Any:
    """
    ``default=`` hook for json.dumps used by log formatters and the cache writer.

    - datetime/date → ISO 8601 string
    - Decimal → float
    - Enum → value
    - pydantic models → JSON-mode dump
    - objects exposing ``to_plain()`` (document field values) → plain value
    - Everything else → string (fallback)

    Numbers stay numbers so consumers of cached JSON do not have to reparse.
    """
    handled, result = _serialize_known_type(obj)
    if handled:
        return result
    to_plain = getattr(obj, "to_plain", None)
    if callable(to_plain):
        return to_plain()
    return str(obj)


__all__ = ["json_serializer"]
