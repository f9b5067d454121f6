"""
Typed document field values.

A decoded change-event payload is a flat-to-nested map of field name to one
of a closed set of value kinds. Each kind is a frozen dataclass so decoded
documents stay immutable once produced.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any


class FieldValue:
    """Base for all document field value kinds."""

    __slots__ = ()

    def to_plain(self) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class StringValue(FieldValue):
    value: str

    def to_plain(self) -> str:
        return self.value


@dataclass(frozen=True)
class IntegerValue(FieldValue):
    value: int

    def to_plain(self) -> int:
        return self.value


@dataclass(frozen=True)
class DoubleValue(FieldValue):
    value: float

    def to_plain(self) -> float:
        return self.value


@dataclass(frozen=True)
class BooleanValue(FieldValue):
    value: bool

    def to_plain(self) -> bool:
        return self.value


@dataclass(frozen=True)
class TimestampValue(FieldValue):
    value: datetime

    def to_plain(self) -> str:
        return self.value.isoformat()


@dataclass(frozen=True)
class MapValue(FieldValue):
    value: "DocumentFields"

    def to_plain(self) -> dict[str, Any]:
        return self.value.to_plain()


@dataclass(frozen=True)
class ListValue(FieldValue):
    value: tuple[FieldValue, ...]

    def to_plain(self) -> list[Any]:
        return [item.to_plain() for item in self.value]


class DocumentFields(Mapping[str, FieldValue]):
    """Immutable mapping of field name to typed value."""

    __slots__ = ("_fields",)

    def __init__(self, fields: Mapping[str, FieldValue] | None = None):
        self._fields: dict[str, FieldValue] = dict(fields or {})

    def __getitem__(self, key: str) -> FieldValue:
        return self._fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, DocumentFields):
            return self._fields == other._fields
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(sorted(self._fields.items(), key=lambda item: item[0])))

    def __repr__(self) -> str:
        return f"DocumentFields({self._fields!r})"

    def get_string(self, name: str) -> str | None:
        """Return the named field as a string, or None when absent.

        Integer identifiers are stringified; maps and lists are not
        identifier-shaped and yield None.
        """
        value = self._fields.get(name)
        if isinstance(value, StringValue):
            return value.value
        if isinstance(value, (IntegerValue, DoubleValue, BooleanValue)):
            return str(value.value)
        return None

    def to_plain(self) -> dict[str, Any]:
        return {name: value.to_plain() for name, value in self._fields.items()}


__all__ = [
    "FieldValue",
    "StringValue",
    "IntegerValue",
    "DoubleValue",
    "BooleanValue",
    "TimestampValue",
    "MapValue",
    "ListValue",
    "DocumentFields",
]
