"""
Schema-directed value codec for snapshots.

JSON has no date type, so date values are written with ``isoformat()`` and
read back using the compiled field type to know which strings are dates.
A ``datetime`` is encoded with a ``T`` separator and decodes to
``datetime``; a plain ``date`` decodes to ``date``.

Invariants:
    - decode_record(schema, encode_record(schema, r)) == r for every
      record accepted by the validator
    - Sequences are always written as JSON arrays and read back as lists
"""

from __future__ import annotations

import datetime
from typing import Any, Dict

from ..schema.types import ArrayOf, FieldType, ScalarKind, TableSchema


def encode_date(value: datetime.date) -> str:
    return value.isoformat()


def decode_date(text: str) -> datetime.date:
    """Parse an ISO date or datetime string.

    Raises:
        ValueError: If ``text`` is not an ISO date/datetime
    """
    if not isinstance(text, str):
        raise ValueError(f"Expected ISO date string, got {type(text).__name__}")
    if "T" in text:
        return datetime.datetime.fromisoformat(text)
    return datetime.date.fromisoformat(text)


def _is_date_field(field_type: FieldType) -> bool:
    return getattr(field_type, "kind", None) == ScalarKind.DATE


def encode_value(field_type: FieldType, value: Any) -> Any:
    if value is None:
        return None
    if isinstance(field_type, ArrayOf):
        if _is_date_field(field_type):
            return [encode_date(v) for v in value]
        return list(value)
    if _is_date_field(field_type):
        return encode_date(value)
    if isinstance(value, tuple):
        return list(value)
    return value


def decode_value(field_type: FieldType, value: Any) -> Any:
    if value is None or not _is_date_field(field_type):
        return value
    if isinstance(field_type, ArrayOf):
        return [decode_date(v) for v in value]
    return decode_date(value)


def encode_record(schema: TableSchema, record: Dict[str, Any]) -> Dict[str, Any]:
    """Encode a stored record into JSON-compatible values."""
    encoded: Dict[str, Any] = {}
    for name, value in record.items():
        spec = schema.get_field(name)
        encoded[name] = encode_value(spec.type, value) if spec else value
    return encoded


def decode_record(schema: TableSchema, data: Dict[str, Any]) -> Dict[str, Any]:
    """Decode a JSON record back into native values.

    Raises:
        ValueError: If a date field holds an unparseable string
    """
    decoded: Dict[str, Any] = {}
    for name, value in data.items():
        spec = schema.get_field(name)
        decoded[name] = decode_value(spec.type, value) if spec else value
    return decoded
