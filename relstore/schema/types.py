"""
Core type definitions for the relstore schema system.

This module defines the compiled form of a table declaration:
- ScalarKind: The scalar value kinds a field can hold
- Scalar, ArrayOf, Reference, ArrayReference: The closed FieldType variants
- FieldSpec: A field's compiled type plus its required flag
- TableSchema: All fields of one table plus its row counter

Invariants:
    - FieldType values are only built by the schema compiler
    - Reference targets name a table in the same schema set
    - Field names are unique within a table; ``id`` is reserved
    - TableSchema.fields never changes after compilation

How to change safely:
    - Add a new scalar kind to ScalarKind and to the validator's checks
    - Keep ``token`` stable, it is the snapshot representation
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any, Dict, Optional, Union

RESERVED_FIELD = "id"


class ScalarKind(Enum):
    """Supported scalar kinds.

    These map to the runtime types accepted by the validator.
    """

    NUMBER = "number"
    STRING = "string"
    DATE = "date"

    @classmethod
    def from_str(cls, value: str) -> Optional[ScalarKind]:
        """Convert a token segment to a ScalarKind, or None if unsupported."""
        for kind in cls:
            if kind.value == value:
                return kind
        return None


@dataclass(frozen=True)
class Scalar:
    """A single value of one scalar kind."""

    kind: ScalarKind

    @property
    def token(self) -> str:
        return self.kind.value


@dataclass(frozen=True)
class ArrayOf:
    """An ordered sequence of one scalar kind, possibly empty."""

    kind: ScalarKind

    @property
    def token(self) -> str:
        return f"array {self.kind.value}"


@dataclass(frozen=True)
class Reference:
    """The identifier of one existing row in ``table``."""

    table: str

    @property
    def token(self) -> str:
        return f"id {self.table}"


@dataclass(frozen=True)
class ArrayReference:
    """An ordered sequence of row identifiers, each existing in ``table``."""

    table: str

    @property
    def token(self) -> str:
        return f"array id {self.table}"


FieldType = Union[Scalar, ArrayOf, Reference, ArrayReference]


@dataclass(frozen=True)
class FieldSpec:
    """Compiled declaration of a single field.

    Attributes:
        name: Field name, unique within its table
        type: Compiled field type variant
        required: Whether the field must be present on insert

    Example:
        >>> name = FieldSpec("name", Scalar(ScalarKind.STRING), required=True)
        >>> name.to_dict()
        {'type': 'string', 'required': True}
    """

    name: str
    type: FieldType
    required: bool = False

    @property
    def is_reference(self) -> bool:
        return isinstance(self.type, (Reference, ArrayReference))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the raw declaration form accepted by the compiler."""
        return {"type": self.type.token, "required": self.required}


@dataclass
class TableSchema:
    """Compiled schema for one table.

    ``count`` is the number of rows ever inserted. It only grows and is kept
    for diagnostics; it is not the current row count.

    Attributes:
        name: Table name
        fields: Field name to FieldSpec, in declaration order
        count: Monotonic insert counter
    """

    name: str
    fields: Dict[str, FieldSpec] = dataclass_field(default_factory=dict)
    count: int = 0

    def get_field(self, name: str) -> Optional[FieldSpec]:
        return self.fields.get(name)

    def get_required_fields(self) -> list[FieldSpec]:
        """Get list of required fields."""
        return [f for f in self.fields.values() if f.required]

    def fields_to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {name: spec.to_dict() for name, spec in self.fields.items()}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation for serialization."""
        return {"count": self.count, "fields": self.fields_to_dict()}
