"""
Predicate queries over one table.

A predicate maps field names to exact values. A row matches when every
pair matches (AND). Matching is ``==`` on the stored value, except that a
bool never matches a number.

Invariants:
    - Every predicate field must be declared in the table schema (``id``
      is always allowed); otherwise the whole query fails with QueryError
    - An empty predicate returns every row
    - Results keep insertion order and are copies
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Mapping, Optional

from ..errors import QueryError
from ..schema.types import RESERVED_FIELD
from .table_store import Record, TableStore

_MISSING = object()


class QueryEngine:
    """Evaluates predicates against a TableStore."""

    def __init__(self, store: TableStore) -> None:
        self.store = store

    def find(self, table: str, predicate: Optional[Mapping[str, Any]] = None) -> list[Record]:
        """Return all rows of ``table`` matching ``predicate``.

        Args:
            table: Table to scan
            predicate: Field name to exact value; None or {} matches all rows

        Returns:
            Matching records in insertion order

        Raises:
            NotFoundError: If the table is not declared
            QueryError: If a predicate field is not declared
        """
        schema = self.store.get_schema(table)
        conditions: Dict[str, Any] = dict(predicate or {})

        for name in conditions:
            if name != RESERVED_FIELD and schema.get_field(name) is None:
                raise QueryError(table, name)

        return [
            copy.deepcopy(row)
            for row in list(self.store.rows[table].values())
            if _matches(row, conditions)
        ]


def _matches(row: Record, conditions: Mapping[str, Any]) -> bool:
    for name, expected in conditions.items():
        actual = row.get(name, _MISSING)
        if actual is _MISSING or not _equal(actual, _comparable(expected)):
            return False
    return True


def _equal(actual: Any, expected: Any) -> bool:
    # True == 1 in Python, but bool is never a number here
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    if isinstance(actual, list) and isinstance(expected, list):
        return len(actual) == len(expected) and all(
            _equal(a, e) for a, e in zip(actual, expected)
        )
    return actual == expected


def _comparable(value: Any) -> Any:
    # stored sequences are lists
    if isinstance(value, tuple):
        return list(value)
    return value
