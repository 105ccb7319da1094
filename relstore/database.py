"""
Database handle for relstore.

A Database wires the components together for one named database:

    caller ──▶ Database ──▶ TableStore ──▶ TypeValidator
                   │             │
                   │             └──▶ IdentifierSource
                   ├──▶ QueryEngine
                   └──▶ PersistenceManager (save / autosave)

Invariants:
    - A Database is an explicit handle; several can coexist in a process
    - Schemas are fixed once the handle exists
    - With autosave on, every successful mutation is followed by a full
      synchronous snapshot write; if that write fails the mutation stays
      applied in memory and PersistenceError is raised to the caller
    - Snapshots are built under the persistence save lock, so concurrent
      autosaves never leave an older state on disk

Example:
    >>> db = create_database("shop", {
    ...     "Person": {"name": {"type": "string", "required": True}},
    ...     "Pet": {"owner": {"type": "id Person"}},
    ... })
    >>> ada = db.insert("Person", {"name": "Ada"})
    >>> db.insert("Pet", {"owner": ada["id"]})["owner"] == ada["id"]
    True
    >>> db.save_sync()
    True
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from .config import Settings
from .identifiers import IdentifierSource
from .schema.compiler import SchemaSet, compile_schemas
from .snapshot.persistence import PersistenceManager, Rows
from .store.query import QueryEngine
from .store.table_store import Record, TableStore

logger = logging.getLogger(__name__)


class Database:
    """One in-memory database bound to its snapshot location.

    Use create_database() or load_database() rather than the constructor.

    Attributes:
        name: Database name
        autosave: Whether mutations trigger a snapshot write
        store: The TableStore holding all rows
        query: QueryEngine over ``store``
        persistence: PersistenceManager for the snapshot file
    """

    def __init__(
        self,
        name: str,
        schemas: SchemaSet,
        persistence: PersistenceManager,
        identifiers: IdentifierSource,
        rows: Optional[Rows] = None,
        autosave: bool = False,
    ) -> None:
        self.name = name
        self.autosave = autosave
        self.persistence = persistence
        self.identifiers = identifiers
        self.store = TableStore(schemas, identifiers, rows=rows, on_mutation=self._on_mutation)
        self.query = QueryEngine(self.store)

    @classmethod
    def create(
        cls,
        name: str,
        schema: Mapping[str, Any],
        autosave: Optional[bool] = None,
        *,
        settings: Optional[Settings] = None,
        id_generator: Optional[Callable[[], str]] = None,
    ) -> Database:
        """Compile ``schema`` and start a new, empty database.

        Args:
            name: Database name; the snapshot is ``<data_dir>/<name>.db.json``
            schema: Raw table declarations (see relstore.schema.compiler)
            autosave: Overrides ``settings.autosave``
            settings: Configuration; loaded from the environment if omitted
            id_generator: Overrides the UUID4 identifier generator

        Raises:
            DatabaseExistsError: If a snapshot already exists for ``name``
            SchemaError: If the schema does not compile
            PersistenceError: If autosave is on and the first write fails
        """
        settings = settings or Settings()
        persistence = PersistenceManager(name, settings.data_dir)
        persistence.create_new()
        schemas = compile_schemas(schema)

        db = cls(
            name,
            schemas,
            persistence,
            IdentifierSource(id_generator, settings.buffer_size),
            autosave=settings.autosave if autosave is None else autosave,
        )
        logger.info(
            "Created database",
            extra={"database": name, "tables": len(schemas), "autosave": db.autosave},
        )

        if db.autosave:
            try:
                db.persistence.write(db.snapshot)
            except Exception:
                db.close()
                raise
        return db

    @classmethod
    def load(
        cls,
        name: str,
        autosave: Optional[bool] = None,
        *,
        settings: Optional[Settings] = None,
        id_generator: Optional[Callable[[], str]] = None,
    ) -> Database:
        """Load a database from its snapshot.

        Args:
            name: Database name
            autosave: Overrides the flag stored in the snapshot
            settings: Configuration; loaded from the environment if omitted
            id_generator: Overrides the UUID4 identifier generator

        Raises:
            NotFoundError: If no snapshot exists for ``name``
            PersistenceError: If the snapshot cannot be decoded
        """
        settings = settings or Settings()
        persistence = PersistenceManager(name, settings.data_dir)
        loaded = persistence.load()

        db = cls(
            name,
            loaded.schemas,
            persistence,
            IdentifierSource(id_generator, settings.buffer_size),
            rows=loaded.rows,
            autosave=loaded.autosave if autosave is None else autosave,
        )
        logger.info(
            "Loaded database",
            extra={"database": name, "tables": len(loaded.schemas), "autosave": db.autosave},
        )
        return db

    @property
    def path(self) -> Path:
        """Snapshot file location."""
        return self.persistence.path

    @property
    def schemas(self) -> SchemaSet:
        return self.store.schemas

    @property
    def fingerprint(self) -> str:
        return self.store.schemas.fingerprint

    def list_tables(self) -> list[str]:
        return self.store.list_tables()

    def insert(self, table: str, record: Mapping[str, Any]) -> Record:
        """Insert a record and return it with its new ``id``.

        Raises:
            NotFoundError: Unknown table
            ValidationError: Record does not conform to the table schema
            PersistenceError: Autosave write failed (the row is kept)
        """
        return self.store.insert(table, dict(record))

    def set_field(self, table: str, row_id: str, field_name: str, value: Any) -> Record:
        """Overwrite one field of a row and return the updated row.

        Raises:
            NotFoundError: Unknown table or row
            ValidationError: Value does not conform to the field type
            PersistenceError: Autosave write failed (the change is kept)
        """
        return self.store.set_field(table, row_id, field_name, value)

    def delete_by_id(self, table: str, row_id: str) -> bool:
        return self.store.delete_by_id(table, row_id)

    def find_by_id(self, table: str, row_id: str) -> Optional[Record]:
        return self.store.find_by_id(table, row_id)

    def find(self, table: str, predicate: Optional[Mapping[str, Any]] = None) -> list[Record]:
        """Rows of ``table`` whose fields equal every predicate value."""
        return self.query.find(table, predicate)

    def snapshot(self) -> dict[str, Any]:
        """Encode the current state as a snapshot document."""
        return self.persistence.build_snapshot(self.store.schemas, self.store.rows, self.autosave)

    async def save(self) -> None:
        """Write the snapshot from a worker thread.

        Raises:
            PersistenceError: If the write fails
        """
        await self.persistence.save(self.snapshot)

    def save_sync(self) -> bool:
        """Write the snapshot; returns False (and logs) on failure."""
        return self.persistence.save_sync(self.snapshot)

    def close(self) -> None:
        """Release background resources. Does not save."""
        self.identifiers.close()

    def _on_mutation(self) -> None:
        if self.autosave:
            self.persistence.write(self.snapshot)

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Database(name={self.name!r}, tables={self.list_tables()}, autosave={self.autosave})"


def create_database(
    name: str,
    schema: Mapping[str, Any],
    autosave: Optional[bool] = None,
    *,
    settings: Optional[Settings] = None,
    id_generator: Optional[Callable[[], str]] = None,
) -> Database:
    """Create a new database. See Database.create."""
    return Database.create(
        name, schema, autosave, settings=settings, id_generator=id_generator
    )


def load_database(
    name: str,
    autosave: Optional[bool] = None,
    *,
    settings: Optional[Settings] = None,
    id_generator: Optional[Callable[[], str]] = None,
) -> Database:
    """Load an existing database. See Database.load."""
    return Database.load(name, autosave, settings=settings, id_generator=id_generator)
