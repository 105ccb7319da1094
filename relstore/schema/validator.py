"""
Type validator for relstore.

Decides whether a value conforms to a compiled FieldType. Scalar and array
checks are pure; reference checks consult the current row-id sets of the
referenced table.

Invariants:
    - validate() never mutates state
    - bool is not a number, numeric-looking strings are not numbers
    - A str is never treated as a sequence
    - An empty list/tuple is valid for every array type
    - A reference to a table that does not exist raises
      ReferentialIntegrityError rather than returning False
"""

from __future__ import annotations

import datetime
from collections.abc import Mapping
from typing import Any, Callable, Dict

from ..errors import ReferentialIntegrityError
from .types import ArrayOf, ArrayReference, FieldType, Reference, Scalar, ScalarKind

_SCALAR_CHECKS: Dict[ScalarKind, Callable[[Any], bool]] = {
    ScalarKind.NUMBER: lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    ScalarKind.STRING: lambda v: isinstance(v, str),
    ScalarKind.DATE: lambda v: isinstance(v, datetime.date),
}


def is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def check_scalar(kind: ScalarKind, value: Any) -> bool:
    return _SCALAR_CHECKS[kind](value)


class TypeValidator:
    """Validates values against compiled field types.

    Attributes:
        rows: Table name to (row id to record), the live row mappings of
            the owning store

    Example:
        >>> validator = TypeValidator({"Person": {"abc": {"id": "abc"}}})
        >>> validator.validate(Reference("Person"), "abc")
        True
        >>> validator.validate(Scalar(ScalarKind.NUMBER), "36")
        False
    """

    def __init__(self, rows: Mapping[str, Mapping[str, Any]]) -> None:
        self.rows = rows

    def validate(self, field_type: FieldType, value: Any) -> bool:
        """Check ``value`` against ``field_type``.

        Raises:
            ReferentialIntegrityError: If a reference targets a missing table
        """
        if isinstance(field_type, Scalar):
            return check_scalar(field_type.kind, value)

        if isinstance(field_type, ArrayOf):
            if not is_sequence(value):
                return False
            return all(check_scalar(field_type.kind, v) for v in value)

        if isinstance(field_type, Reference):
            table_rows = self._table_rows(field_type.table)
            return isinstance(value, str) and value in table_rows

        if isinstance(field_type, ArrayReference):
            table_rows = self._table_rows(field_type.table)
            if not is_sequence(value):
                return False
            return all(isinstance(v, str) and v in table_rows for v in value)

        raise TypeError(f"Unknown field type {field_type!r}")

    def _table_rows(self, table: str) -> Mapping[str, Any]:
        table_rows = self.rows.get(table)
        if table_rows is None:
            raise ReferentialIntegrityError(table)
        return table_rows
