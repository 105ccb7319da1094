"""
Schema compiler for relstore.

The compiler turns a raw declaration map into a SchemaSet:
- Collects declared table names so forward and self references resolve
- Parses every type token into a closed FieldType variant
- Rejects unsupported tokens and dangling table references
- Computes a fingerprint of the compiled declarations

Raw declaration format::

    {
        "Person": {
            "name": {"type": "string", "required": True},
            "age": {"type": "number"},
        },
        "Pet": {
            "owner": {"type": "id Person"},
            "tags": {"type": "array string"},
        },
    }

Supported type tokens:
    number | string | date
    array <scalar>
    id <table>
    array id <table>

Invariants:
    - Compilation is fail-fast: the first offending token raises SchemaError
    - Nothing is partially compiled; a SchemaError leaves no SchemaSet behind
    - This is the only place type tokens are parsed

Example:
    >>> schemas = compile_schemas({"Person": {"name": {"type": "string"}}})
    >>> schemas["Person"].fields["name"].type
    Scalar(kind=<ScalarKind.STRING: 'string'>)
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterator, Optional

from ..errors import SchemaError
from .types import (
    RESERVED_FIELD,
    ArrayOf,
    ArrayReference,
    FieldSpec,
    FieldType,
    Reference,
    Scalar,
    ScalarKind,
    TableSchema,
)

logger = logging.getLogger(__name__)


class SchemaSet(Mapping):
    """Compiled, immutable set of table schemas.

    Behaves as a read-only mapping of table name to TableSchema, in
    declaration order.

    Attributes:
        fingerprint: SHA-256 hash of the canonical field declarations
    """

    def __init__(self, tables: Dict[str, TableSchema]) -> None:
        self._tables = tables
        self._fingerprint = self._compute_fingerprint()

    def __getitem__(self, name: str) -> TableSchema:
        return self._tables[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tables)

    def __len__(self) -> int:
        return len(self._tables)

    def __repr__(self) -> str:
        return f"SchemaSet(tables={list(self._tables)}, fingerprint={self._fingerprint!r})"

    @property
    def fingerprint(self) -> str:
        """Schema fingerprint (stable across processes)."""
        return self._fingerprint

    def list_tables(self) -> list[str]:
        return list(self._tables)

    def declarations(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """Raw declaration map that compiles back to this set."""
        return {name: table.fields_to_dict() for name, table in self._tables.items()}

    def _compute_fingerprint(self) -> str:
        """Compute SHA-256 fingerprint of the declarations.

        Row counters are not part of the fingerprint, only field declarations.

        Returns:
            Fingerprint string in format 'sha256:<hash>'
        """
        canonical = json.dumps(self.declarations(), sort_keys=True, separators=(",", ":"))
        hash_bytes = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        return f"sha256:{hash_bytes}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation, including row counters."""
        return {name: table.to_dict() for name, table in self._tables.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SchemaSet:
        """Recompile a set from its ``to_dict`` form and restore counters.

        Raises:
            SchemaError: If the stored declarations no longer compile
        """
        declarations = {}
        counts = {}
        for name, table_data in data.items():
            if not isinstance(table_data, Mapping) or "fields" not in table_data:
                raise SchemaError(f"Malformed schema entry for table '{name}'", table=name)
            declarations[name] = table_data["fields"]
            counts[name] = table_data.get("count", 0)

        schemas = compile_schemas(declarations)
        for name, count in counts.items():
            if not isinstance(count, int) or isinstance(count, bool) or count < 0:
                raise SchemaError(f"Invalid row counter for table '{name}': {count!r}", table=name)
            schemas[name].count = count
        return schemas


def parse_type_token(token: str, declared_tables: frozenset[str]) -> Optional[FieldType]:
    """Parse one type token into a FieldType.

    Args:
        token: Raw type string such as ``"array id Person"``
        declared_tables: Every table name in the schema set

    Returns:
        The FieldType, or None if the token is unsupported
    """
    segments = token.split()

    if len(segments) == 1:
        kind = ScalarKind.from_str(segments[0])
        return Scalar(kind) if kind else None

    if len(segments) == 2:
        head, tail = segments
        if head == "id":
            return Reference(tail) if tail in declared_tables else None
        if head == "array":
            kind = ScalarKind.from_str(tail)
            return ArrayOf(kind) if kind else None
        return None

    if len(segments) == 3:
        if segments[0] == "array" and segments[1] == "id" and segments[2] in declared_tables:
            return ArrayReference(segments[2])
        return None

    return None


def compile_schemas(raw_tables: Mapping[str, Any]) -> SchemaSet:
    """Compile a raw table declaration map.

    Args:
        raw_tables: Table name to (field name to ``{"type", "required"?}``)

    Returns:
        Compiled SchemaSet with every row counter at zero

    Raises:
        SchemaError: On the first unsupported token or malformed declaration
    """
    if not isinstance(raw_tables, Mapping):
        raise SchemaError(f"Schema must be a mapping of tables, got {type(raw_tables).__name__}")

    declared = frozenset(raw_tables)
    tables: Dict[str, TableSchema] = {}

    for table_name, raw_fields in raw_tables.items():
        if not isinstance(table_name, str) or not table_name:
            raise SchemaError(f"Invalid table name {table_name!r}")
        if not isinstance(raw_fields, Mapping):
            raise SchemaError(
                f"Fields of table '{table_name}' must be a mapping", table=table_name
            )

        fields: Dict[str, FieldSpec] = {}
        for field_name, raw_spec in raw_fields.items():
            fields[field_name] = _compile_field(table_name, field_name, raw_spec, declared)

        tables[table_name] = TableSchema(name=table_name, fields=fields)
        logger.debug(f"Compiled table: {table_name} ({len(fields)} fields)")

    return SchemaSet(tables)


def _compile_field(
    table_name: str,
    field_name: Any,
    raw_spec: Any,
    declared: frozenset[str],
) -> FieldSpec:
    if not isinstance(field_name, str) or not field_name:
        raise SchemaError(
            f"Invalid field name {field_name!r} in table '{table_name}'", table=table_name
        )
    if field_name == RESERVED_FIELD:
        raise SchemaError(
            f"Field name '{RESERVED_FIELD}' is reserved (table '{table_name}')",
            table=table_name,
            field_name=field_name,
        )
    if not isinstance(raw_spec, Mapping):
        raise SchemaError(
            f"Declaration of {table_name}.{field_name} must be a mapping",
            table=table_name,
            field_name=field_name,
        )

    token = raw_spec.get("type")
    if not isinstance(token, str):
        raise SchemaError(
            f"Field {table_name}.{field_name} has no type",
            token=None if token is None else str(token),
            table=table_name,
            field_name=field_name,
        )

    field_type = parse_type_token(token, declared)
    if field_type is None:
        raise SchemaError(
            f"Type given, {token}, does not conform to a supported type.",
            token=token,
            table=table_name,
            field_name=field_name,
        )

    required = raw_spec.get("required", False)
    if not isinstance(required, bool):
        raise SchemaError(
            f"'required' of {table_name}.{field_name} must be a boolean",
            token=token,
            table=table_name,
            field_name=field_name,
        )

    return FieldSpec(name=field_name, type=field_type, required=required)
