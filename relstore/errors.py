"""
Error types for relstore.

This module defines all exception types raised by the store:
- RelStoreError: Base exception
- SchemaError: Schema declaration could not be compiled
- ValidationError: A field value does not conform to its compiled type
- NotFoundError: A table, row or database does not exist
- ReferentialIntegrityError: A reference field targets a missing table
- QueryError: A predicate names an undeclared field
- PersistenceError: Snapshot read/write failure

Invariants:
    - All errors inherit from RelStoreError
    - Errors include context for debugging in ``details``
    - NotFoundError and ValidationError never overlap, so callers can
      branch on "doesn't exist" vs "malformed"
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class RelStoreError(Exception):
    """Base exception for all relstore errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "RELSTORE_ERROR"
        self.details = details or {}


class SchemaError(RelStoreError):
    """Schema declaration could not be compiled.

    Raised when:
    - A type token is not one of the supported forms
    - A reference names a table that is not declared
    - A field declaration is malformed or uses a reserved name
    """

    def __init__(
        self,
        message: str,
        token: Optional[str] = None,
        table: Optional[str] = None,
        field_name: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="SCHEMA_ERROR",
            details={"token": token, "table": table, "field": field_name},
        )
        self.token = token
        self.table = table
        self.field = field_name


class ValidationError(RelStoreError):
    """Record validation failed.

    Raised when:
    - A field value has the wrong type
    - A referenced row does not exist
    - A required field is missing or None
    - A field is not declared in the table schema
    """

    def __init__(
        self,
        message: str,
        table: str,
        field_name: str,
        value: Any = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"table": table, "field": field_name, "value": repr(value)},
        )
        self.table = table
        self.field = field_name
        self.value = value


class NotFoundError(RelStoreError):
    """Resource not found.

    Raised when:
    - Table doesn't exist
    - Row doesn't exist
    - Database snapshot doesn't exist
    """

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: str,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ReferentialIntegrityError(RelStoreError):
    """A reference field points at a table that does not exist.

    This indicates an inconsistent schema set, not a bad caller value.
    """

    def __init__(self, table: str) -> None:
        super().__init__(
            f"Referenced table {table} does not exist",
            code="REFERENTIAL_INTEGRITY",
            details={"table": table},
        )
        self.table = table


class QueryError(RelStoreError):
    """Query predicate is invalid for the target table."""

    def __init__(self, table: str, field_name: str) -> None:
        super().__init__(
            f"Field '{field_name}' is not declared in table '{table}'",
            code="QUERY_ERROR",
            details={"table": table, "field": field_name},
        )
        self.table = table
        self.field = field_name


class PersistenceError(RelStoreError):
    """Snapshot read or write failed.

    The in-memory database stays usable after this error.
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        code: str = "PERSISTENCE_ERROR",
    ) -> None:
        super().__init__(message, code=code, details={"path": path})
        self.path = path


class DatabaseExistsError(PersistenceError):
    """A snapshot already exists where a new database would be created."""

    def __init__(self, name: str, path: str) -> None:
        super().__init__(
            f"Database {name} already exists",
            path=path,
            code="DATABASE_EXISTS",
        )
        self.name = name
