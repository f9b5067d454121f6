"""
Change-event payload decoder.

Normalizes a raw payload into DocumentFields. Three encodings are tried in
fixed order:

1. structured - a mapping exposing typed value wrappers under ``fields``
   (top level, or under the ``value`` / ``oldValue`` snapshots)
2. json - bytes or text that parse as UTF-8 JSON; structured shapes are
   unwrapped as in (1), flat objects have their top-level scalars wrapped
3. binary-fallback - last resort for an opaque binary encoding; extracts
   only ``parentId`` / ``childId``, read from protobuf length-delimited
   framing after the field name (or a short text separator), and nothing else

The change kind comes from the ``oldValue`` / ``value`` snapshot markers:
no before-snapshot means created, no after-snapshot means deleted, both
means updated. Payloads without snapshots count as created.
"""

import json
import logging
import re
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from cache_sync.schemas.events import ChangeKind, DecodedDocument
from cache_sync.schemas.fields import (
    BooleanValue,
    DocumentFields,
    DoubleValue,
    FieldValue,
    IntegerValue,
    ListValue,
    MapValue,
    StringValue,
    TimestampValue,
)
from core.errors import DecodeError

logger = logging.getLogger(__name__)

STRATEGY_STRUCTURED = "structured"
STRATEGY_JSON = "json"
STRATEGY_BINARY = "binary-fallback"

IDENTIFIER_FIELDS = ("parentId", "childId")

# Length-delimited wire type in a protobuf field tag
_WIRE_LENGTH_DELIMITED = 2
_MAX_FRAME_DEPTH = 3
_IDENTIFIER_TOKEN = re.compile(rb"[A-Za-z0-9][A-Za-z0-9_\-]{0,255}")
# Text-ish encodings: field name, a short separator run, then the token
_TEXT_TOKEN = rb"[ \t\"':=]{1,4}([A-Za-z0-9][A-Za-z0-9_\-]{0,255})"
_TEXT_PATTERNS = {
    name: re.compile(re.escape(name.encode("ascii")) + _TEXT_TOKEN) for name in IDENTIFIER_FIELDS
}


def _parse_timestamp(raw: str) -> datetime:
    return datetime.fromisoformat(raw.replace("Z", "+00:00") if raw.endswith("Z") else raw)


def _decode_map(wrapper: Any, path: str) -> MapValue:
    fields = wrapper.get("fields") if isinstance(wrapper, Mapping) else None
    return MapValue(unwrap_fields(fields or {}, path))


def _decode_array(wrapper: Any, path: str) -> ListValue:
    values = wrapper.get("values") if isinstance(wrapper, Mapping) else None
    items = []
    for index, item in enumerate(values or []):
        decoded = unwrap_value(item, f"{path}[{index}]")
        if decoded is not None:
            items.append(decoded)
    return ListValue(tuple(items))


def _decode_integer(raw: Any, path: str) -> IntegerValue:
    # Integers travel as decimal strings
    try:
        return IntegerValue(int(raw))
    except (TypeError, ValueError) as e:
        raise DecodeError(f"Invalid integerValue at {path}: {raw!r}", cause=e) from e


def _decode_double(raw: Any, path: str) -> DoubleValue:
    try:
        return DoubleValue(float(raw))
    except (TypeError, ValueError) as e:
        raise DecodeError(f"Invalid doubleValue at {path}: {raw!r}", cause=e) from e


def _decode_timestamp(raw: Any, path: str) -> TimestampValue:
    try:
        return TimestampValue(_parse_timestamp(str(raw)))
    except ValueError as e:
        raise DecodeError(f"Invalid timestampValue at {path}: {raw!r}", cause=e) from e


_VALUE_DECODERS: dict[str, Callable[[Any, str], FieldValue]] = {
    "stringValue": lambda raw, path: StringValue(str(raw)),
    "integerValue": _decode_integer,
    "doubleValue": _decode_double,
    "booleanValue": lambda raw, path: BooleanValue(bool(raw)),
    "timestampValue": _decode_timestamp,
    "mapValue": _decode_map,
    "arrayValue": _decode_array,
}


def unwrap_value(wrapper: Any, path: str = "") -> FieldValue | None:
    """Unwrap one typed value wrapper. Unsupported kinds (null, bytes, geo) yield None."""
    if not isinstance(wrapper, Mapping):
        return None
    for kind, decode in _VALUE_DECODERS.items():
        if kind in wrapper:
            return decode(wrapper[kind], path)
    return None


def unwrap_fields(fields: Mapping[str, Any], path: str = "") -> DocumentFields:
    """Unwrap a ``fields`` map of typed value wrappers into DocumentFields."""
    result: dict[str, FieldValue] = {}
    for name, wrapper in fields.items():
        value = unwrap_value(wrapper, f"{path}.{name}" if path else name)
        if value is not None:
            result[name] = value
    return DocumentFields(result)


def wrap_plain(data: Mapping[str, Any]) -> DocumentFields:
    """Wrap the top-level scalars of a plain JSON object. Nested values are dropped."""
    result: dict[str, FieldValue] = {}
    for name, value in data.items():
        # bool before int: bool is an int subclass
        if isinstance(value, bool):
            result[name] = BooleanValue(value)
        elif isinstance(value, int):
            result[name] = IntegerValue(value)
        elif isinstance(value, float):
            result[name] = DoubleValue(value)
        elif isinstance(value, str):
            result[name] = StringValue(value)
    return DocumentFields(result)


def _snapshot(envelope: Mapping[str, Any], key: str) -> Mapping[str, Any] | None:
    snapshot = envelope.get(key)
    return snapshot if isinstance(snapshot, Mapping) else None


def _has_marker(snapshot: Mapping[str, Any] | None) -> bool:
    return bool(snapshot and snapshot.get("name"))


def _is_structured(envelope: Mapping[str, Any]) -> bool:
    if isinstance(envelope.get("fields"), Mapping):
        return True
    for key in ("value", "oldValue"):
        snapshot = _snapshot(envelope, key)
        if snapshot is not None and isinstance(snapshot.get("fields"), Mapping):
            return True
    return False


def change_kind_for(envelope: Mapping[str, Any]) -> ChangeKind:
    """Derive the change kind from before/after snapshot markers."""
    if "value" not in envelope and "oldValue" not in envelope:
        return ChangeKind.CREATED
    if not _has_marker(_snapshot(envelope, "oldValue")):
        return ChangeKind.CREATED
    if not _has_marker(_snapshot(envelope, "value")):
        return ChangeKind.DELETED
    return ChangeKind.UPDATED


def _decode_structured(envelope: Mapping[str, Any]) -> DecodedDocument:
    change_kind = change_kind_for(envelope)

    value = _snapshot(envelope, "value")
    old_value = _snapshot(envelope, "oldValue")
    if value is not None and isinstance(value.get("fields"), Mapping):
        fields = value["fields"]
    elif isinstance(envelope.get("fields"), Mapping):
        fields = envelope["fields"]
    elif old_value is not None and isinstance(old_value.get("fields"), Mapping):
        # Deletes carry only the before-snapshot
        fields = old_value["fields"]
    else:
        fields = {}

    return DecodedDocument(unwrap_fields(fields), change_kind, STRATEGY_STRUCTURED)


def _read_varint(payload: bytes, pos: int) -> tuple[int, int] | None:
    """Read a protobuf varint at pos. Returns (value, next position) or None."""
    value = 0
    for shift in range(0, 35, 7):
        if pos >= len(payload):
            return None
        byte = payload[pos]
        pos += 1
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value, pos
    return None


def _framed_identifier(payload: bytes, pos: int, depth: int = 0) -> str | None:
    """Identifier in the length-delimited field that starts at pos.

    The field's declared length must be consumed exactly by the token. A
    field holding anything else is treated as a nested message (the value
    wrapper) and its first field is tried in turn.
    """
    if depth > _MAX_FRAME_DEPTH:
        return None
    tag = _read_varint(payload, pos)
    if tag is None or tag[0] & 0x07 != _WIRE_LENGTH_DELIMITED:
        return None
    length = _read_varint(payload, tag[1])
    if length is None:
        return None
    start, end = length[1], length[1] + length[0]
    if length[0] == 0 or end > len(payload):
        return None
    if _IDENTIFIER_TOKEN.fullmatch(payload, start, end):
        return payload[start:end].decode("ascii")
    return _framed_identifier(payload[:end], start, depth + 1)


def _binary_identifier(payload: bytes, name: str) -> str | None:
    needle = name.encode("ascii")
    pos = payload.find(needle)
    while pos != -1:
        found = _framed_identifier(payload, pos + len(needle))
        if found:
            return found
        pos = payload.find(needle, pos + 1)

    match = _TEXT_PATTERNS[name].search(payload)
    return match.group(1).decode("ascii") if match else None


def _decode_binary(payload: bytes) -> DecodedDocument:
    extracted: dict[str, FieldValue] = {}
    for name in IDENTIFIER_FIELDS:
        identifier = _binary_identifier(payload, name)
        if identifier:
            extracted[name] = StringValue(identifier)

    if not extracted:
        raise DecodeError(
            "No known payload encoding applies",
            context={"payload_bytes": len(payload)},
        )

    logger.warning(
        "Payload decoded by binary fallback; only identifiers recovered",
        extra={
            "decode_strategy": STRATEGY_BINARY,
            "payload_bytes": len(payload),
            "field_count": len(extracted),
        },
    )
    return DecodedDocument(DocumentFields(extracted), ChangeKind.CREATED, STRATEGY_BINARY)


class EventDecoder:
    """Decodes raw change-event payloads into typed documents."""

    def decode(self, raw_payload: Any) -> DocumentFields:
        """Decode a payload into DocumentFields. Raises DecodeError if no encoding applies."""
        return self.decode_event(raw_payload).fields

    def decode_event(self, raw_payload: Any) -> DecodedDocument:
        """Decode a payload into fields plus its change kind."""
        if raw_payload is None:
            raise DecodeError("Event payload is empty")

        if isinstance(raw_payload, Mapping):
            if _is_structured(raw_payload):
                document = _decode_structured(raw_payload)
            else:
                document = DecodedDocument(
                    wrap_plain(raw_payload), change_kind_for(raw_payload), STRATEGY_JSON
                )
            self._log_decoded(document, None)
            return document

        if isinstance(raw_payload, str):
            payload = raw_payload.encode("utf-8")
        elif isinstance(raw_payload, (bytes, bytearray, memoryview)):
            payload = bytes(raw_payload)
        else:
            raise DecodeError(f"Unsupported payload type: {type(raw_payload).__name__}")

        if not payload:
            raise DecodeError("Event payload is empty")

        document = self._decode_json(payload)
        if document is None:
            document = _decode_binary(payload)

        self._log_decoded(document, len(payload))
        return document

    @staticmethod
    def _decode_json(payload: bytes) -> DecodedDocument | None:
        try:
            parsed = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None

        if not isinstance(parsed, Mapping):
            return None

        if _is_structured(parsed):
            structured = _decode_structured(parsed)
            return DecodedDocument(structured.fields, structured.change_kind, STRATEGY_JSON)

        return DecodedDocument(wrap_plain(parsed), change_kind_for(parsed), STRATEGY_JSON)

    @staticmethod
    def _log_decoded(document: DecodedDocument, payload_bytes: int | None) -> None:
        logger.debug(
            "Payload decoded",
            extra={
                "decode_strategy": document.strategy,
                "change_kind": document.change_kind.value,
                "field_count": len(document.fields),
                "payload_bytes": payload_bytes,
            },
        )


__all__ = [
    "EventDecoder",
    "change_kind_for",
    "unwrap_fields",
    "unwrap_value",
    "wrap_plain",
    "STRATEGY_STRUCTURED",
    "STRATEGY_JSON",
    "STRATEGY_BINARY",
]
