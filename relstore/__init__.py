"""
relstore - a schema-enforced, in-process relational data store.

A database is a set of named tables. Every table holds records that must
conform to a declared field schema, including reference fields that point
at rows of other tables:

    ┌──────────────┐     ┌────────────────┐     ┌───────────────┐
    │   Schema     │────▶│  Schema        │────▶│  TableStore   │
    │ declarations │     │  Compiler      │     │ (rows by id)  │
    └──────────────┘     └────────────────┘     └───────┬───────┘
                                                        │
                         ┌────────────────┐             │
                         │ TypeValidator  │◀────────────┤
                         └────────────────┘             │
                         ┌────────────────┐             │
                         │ QueryEngine    │◀────────────┤
                         └────────────────┘             ▼
                                               ┌────────────────┐
                                               │ Persistence    │
                                               │ (<name>.db.json)│
                                               └────────────────┘

Invariants:
    - Every stored record is well-typed against its compiled schema
    - Every reference names a row that existed when it was written
    - Schemas are compiled once and never change afterwards
    - A failed mutation leaves the table unchanged

Example:
    >>> import relstore
    >>> db = relstore.create_database("people", {
    ...     "Person": {"name": {"type": "string", "required": True}},
    ... })
    >>> db.insert("Person", {"name": "Ada"})["name"]
    'Ada'
"""

from ._version import __version__
from .config import Settings
from .database import Database, create_database, load_database
from .errors import (
    DatabaseExistsError,
    NotFoundError,
    PersistenceError,
    QueryError,
    ReferentialIntegrityError,
    RelStoreError,
    SchemaError,
    ValidationError,
)

__all__ = [
    "__version__",
    # Database
    "Database",
    "Settings",
    "create_database",
    "load_database",
    # Errors
    "DatabaseExistsError",
    "NotFoundError",
    "PersistenceError",
    "QueryError",
    "ReferentialIntegrityError",
    "RelStoreError",
    "SchemaError",
    "ValidationError",
]
