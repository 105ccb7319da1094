"""
In-memory table store for relstore.

The TableStore owns the row mappings of every table and applies all
mutations:
- insert: validate, assign an identifier, store
- set_field: validate one value, update one field in place
- delete_by_id / find_by_id: direct row access

Invariants:
    - Every stored record conforms to its table's compiled schema
    - Validation runs before mutation; a failure leaves the table unchanged
    - ``id`` is assigned by the store, immutable and never reused
    - Deleting a row does not cascade into rows that reference it
    - Callers only ever receive copies of stored records

Thread safety:
    Each table has its own RLock. Validation and mutation of one record
    happen under the lock of the table being written.

How to change safely:
    - Keep validation ahead of the first write in every mutating method
    - Call the mutation hook only after the change is applied
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Callable, Dict, Optional

from ..errors import NotFoundError, ValidationError
from ..identifiers import IdentifierSource
from ..schema.compiler import SchemaSet
from ..schema.types import RESERVED_FIELD, ArrayOf, ArrayReference, FieldSpec, TableSchema
from ..schema.validator import TypeValidator

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class TableStore:
    """Rows of every table, guarded by the compiled schemas.

    Attributes:
        schemas: Compiled schema set
        rows: Table name to (row id to record), in insertion order
        validator: TypeValidator bound to ``rows``

    Example:
        >>> store = TableStore(schemas, IdentifierSource())
        >>> ada = store.insert("Person", {"name": "Ada", "age": 36})
        >>> store.find_by_id("Person", ada["id"])["name"]
        'Ada'
    """

    def __init__(
        self,
        schemas: SchemaSet,
        identifiers: IdentifierSource,
        rows: Optional[Dict[str, Dict[str, Record]]] = None,
        on_mutation: Optional[Callable[[], None]] = None,
    ) -> None:
        """Initialize the store.

        Args:
            schemas: Compiled schema set
            identifiers: Source of new row identifiers
            rows: Existing rows (from a snapshot); every table starts empty
                if omitted
            on_mutation: Called after every successful mutation
        """
        self.schemas = schemas
        self.identifiers = identifiers
        self.rows: Dict[str, Dict[str, Record]] = {name: {} for name in schemas}
        if rows:
            for name, table_rows in rows.items():
                self.rows[name] = dict(table_rows)
        self.validator = TypeValidator(self.rows)
        self.on_mutation = on_mutation
        self._locks = {name: threading.RLock() for name in schemas}

    def list_tables(self) -> list[str]:
        return self.schemas.list_tables()

    def get_schema(self, table: str) -> TableSchema:
        """Get a table schema.

        Raises:
            NotFoundError: If the table is not declared
        """
        schema = self.schemas.get(table)
        if schema is None:
            raise NotFoundError(f"Table {table} does not exist", "table", table)
        return schema

    def row_count(self, table: str) -> int:
        self.get_schema(table)
        return len(self.rows[table])

    def ids(self, table: str) -> list[str]:
        self.get_schema(table)
        return list(self.rows[table])

    def insert(self, table: str, record: Record) -> Record:
        """Validate and store a new record.

        Args:
            table: Target table
            record: Field values; must not contain ``id``

        Returns:
            Copy of the stored record, including its new ``id``

        Raises:
            NotFoundError: If the table is not declared
            ValidationError: If any field is unknown, missing or malformed
        """
        schema = self.get_schema(table)

        with self._locks[table]:
            for name, value in record.items():
                spec = self._declared_field(schema, name, value)
                self._check_value(schema, spec, value)

            for spec in schema.get_required_fields():
                if spec.name not in record:
                    raise ValidationError(
                        f"Field Check failed for table {table}, required key {spec.name} is missing",
                        table,
                        spec.name,
                    )

            row_id = self.identifiers.next()
            stored = {name: self._normalize(schema.fields[name], value) for name, value in record.items()}
            stored[RESERVED_FIELD] = row_id
            self.rows[table][row_id] = stored
            schema.count += 1
            result = copy.deepcopy(stored)

        logger.debug("Inserted row", extra={"table": table, "row_id": row_id})
        self._mutated()
        return result

    def set_field(self, table: str, row_id: str, field_name: str, value: Any) -> Record:
        """Overwrite one field of an existing record.

        Raises:
            NotFoundError: If the table or row does not exist
            ValidationError: If the field is unknown, ``id``, or ``value``
                does not conform
        """
        schema = self.get_schema(table)

        with self._locks[table]:
            spec = self._declared_field(schema, field_name, value)
            self._check_value(schema, spec, value)

            stored = self.rows[table].get(row_id)
            if stored is None:
                raise NotFoundError(f"{row_id} does not exist in {table}", "row", row_id)

            stored[field_name] = self._normalize(spec, value)
            result = copy.deepcopy(stored)

        logger.debug(
            "Updated row",
            extra={"table": table, "row_id": row_id, "field": field_name},
        )
        self._mutated()
        return result

    def delete_by_id(self, table: str, row_id: str) -> bool:
        """Delete a record.

        Returns:
            True if a row was removed, False if it did not exist

        Raises:
            NotFoundError: If the table is not declared
        """
        self.get_schema(table)

        with self._locks[table]:
            removed = self.rows[table].pop(row_id, None) is not None

        if removed:
            logger.debug("Deleted row", extra={"table": table, "row_id": row_id})
            self._mutated()
        return removed

    def find_by_id(self, table: str, row_id: str) -> Optional[Record]:
        """Fetch a copy of a record, or None if it does not exist.

        Raises:
            NotFoundError: If the table is not declared
        """
        self.get_schema(table)
        found = self.rows[table].get(row_id)
        return copy.deepcopy(found) if found is not None else None

    def _declared_field(self, schema: TableSchema, name: str, value: Any) -> FieldSpec:
        if name == RESERVED_FIELD:
            raise ValidationError(
                f"Field '{RESERVED_FIELD}' is assigned by the store (table {schema.name})",
                schema.name,
                name,
                value,
            )
        spec = schema.get_field(name)
        if spec is None:
            raise ValidationError(
                f"Unknown field '{name}' in table '{schema.name}'",
                schema.name,
                name,
                value,
            )
        return spec

    def _check_value(self, schema: TableSchema, spec: FieldSpec, value: Any) -> None:
        if value is None:
            if spec.required:
                raise ValidationError(
                    f"Field '{spec.name}' is required (table {schema.name})",
                    schema.name,
                    spec.name,
                    value,
                )
            return

        if not self.validator.validate(spec.type, value):
            raise ValidationError(
                f"Field Check failed for table {schema.name}, key {spec.name} value {value!r}",
                schema.name,
                spec.name,
                value,
            )

    @staticmethod
    def _normalize(spec: FieldSpec, value: Any) -> Any:
        if isinstance(spec.type, (ArrayOf, ArrayReference)) and value is not None:
            return list(value)
        return copy.deepcopy(value)

    def _mutated(self) -> None:
        if self.on_mutation is not None:
            self.on_mutation()
