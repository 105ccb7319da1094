"""
Snapshot persistence for relstore.

The PersistenceManager stores a whole database as one JSON document and
restores it. This enables:
- Durable local databases across process restarts
- Single-generation backups (``<name>.db.json.old``)

Snapshot location:
    <data_dir>/<name>.db.json

Snapshot format:
    {
        "format": "relstore.snapshot",
        "version": 1,
        "name": <database name>,
        "autosave": <bool>,
        "fingerprint": "sha256:...",
        "schemas": {<table>: {"count": <int>, "fields": {<field>: {"type", "required"}}}},
        "tables": {<table>: {<id>: <record>}}
    }

Invariants:
    - Saves never overlap; a lock guards the build-rotate-write sequence
      and is released on every exit path
    - A snapshot passed as a callable is built under that lock, so the
      last write always reflects every mutation completed before it
    - Before overwriting, an existing snapshot is copied to ``.old``
    - The new snapshot is written to ``.tmp`` and moved into place
    - save() and save_sync() produce identical bytes
    - load() recompiles the schema set and re-validates every row: required
      fields, value types, and the shape (not the target) of references

How to change safely:
    - Add new top-level keys, don't rename existing ones
    - Bump SNAPSHOT_VERSION for incompatible changes and keep reading the
      old version
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Union

from ..errors import (
    DatabaseExistsError,
    NotFoundError,
    PersistenceError,
    RelStoreError,
)
from ..schema.compiler import SchemaSet
from ..schema.types import RESERVED_FIELD, ArrayReference, FieldType
from ..schema.validator import TypeValidator, is_sequence
from .codec import decode_record, encode_record

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT = "relstore.snapshot"
SNAPSHOT_VERSION = 1
SNAPSHOT_SUFFIX = ".db.json"
BACKUP_SUFFIX = ".old"

Rows = Dict[str, Dict[str, Dict[str, Any]]]
Snapshot = Dict[str, Any]
SnapshotSource = Union[Snapshot, Callable[[], Snapshot]]


@dataclass
class LoadedSnapshot:
    """Contents of a snapshot after decoding.

    Attributes:
        name: Database name stored in the snapshot
        autosave: Autosave flag stored in the snapshot
        schemas: Recompiled schema set, with row counters restored
        rows: Decoded rows per table, in stored order
    """

    name: str
    autosave: bool
    schemas: SchemaSet
    rows: Rows


def snapshot_path(data_dir: Path | str, name: str) -> Path:
    """Get the snapshot file path for a database name."""
    return Path(data_dir) / f"{name}{SNAPSHOT_SUFFIX}"


class PersistenceManager:
    """Reads and writes database snapshots on the local file system.

    Attributes:
        name: Database name
        data_dir: Directory holding the snapshot and its backup

    Example:
        >>> manager = PersistenceManager("shop", "/tmp/data")
        >>> manager.create_new()
        >>> manager.save_sync(manager.build_snapshot(schemas, rows, autosave=False))
        True
        >>> manager.load().schemas.list_tables()
        ['Person', 'Pet']
    """

    def __init__(self, name: str, data_dir: Path | str = ".") -> None:
        if not name:
            raise ValueError("Database name cannot be empty")
        self.name = name
        self.data_dir = Path(data_dir)
        self._save_lock = threading.Lock()
        self._save_count = 0

    @property
    def path(self) -> Path:
        return snapshot_path(self.data_dir, self.name)

    @property
    def backup_path(self) -> Path:
        return self.path.with_name(self.path.name + BACKUP_SUFFIX)

    @property
    def save_count(self) -> int:
        """Successful writes made by this manager."""
        return self._save_count

    def exists(self) -> bool:
        return self.path.exists()

    def create_new(self) -> None:
        """Claim the snapshot location for a new database.

        Nothing is written; the first save creates the file.

        Raises:
            DatabaseExistsError: If a snapshot already exists
        """
        if self.exists():
            raise DatabaseExistsError(self.name, str(self.path))

    def build_snapshot(self, schemas: SchemaSet, rows: Rows, autosave: bool) -> Snapshot:
        """Encode a database into a JSON-compatible snapshot dict."""
        tables: Dict[str, Dict[str, Any]] = {}
        for table_name, schema in schemas.items():
            tables[table_name] = {
                row_id: encode_record(schema, record)
                for row_id, record in list(rows.get(table_name, {}).items())
            }

        return {
            "format": SNAPSHOT_FORMAT,
            "version": SNAPSHOT_VERSION,
            "name": self.name,
            "autosave": autosave,
            "fingerprint": schemas.fingerprint,
            "schemas": schemas.to_dict(),
            "tables": tables,
        }

    @staticmethod
    def dumps(snapshot: Snapshot) -> str:
        return json.dumps(snapshot, indent=2, ensure_ascii=False)

    def write(self, snapshot: SnapshotSource) -> None:
        """Rotate the backup and write a snapshot.

        Args:
            snapshot: Snapshot dict, or a zero-argument callable building
                one; a callable is invoked while the save lock is held

        Raises:
            PersistenceError: On any file system failure
        """
        path = self.path
        tmp_path = path.with_name(path.name + ".tmp")

        with self._save_lock:
            payload = self.dumps(snapshot() if callable(snapshot) else snapshot)
            try:
                self.data_dir.mkdir(parents=True, exist_ok=True)

                if path.exists():
                    shutil.copyfile(path, self.backup_path)

                with open(tmp_path, "w", encoding="utf-8") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())

                tmp_path.replace(path)
            except OSError as e:
                raise PersistenceError(f"Failed to save {path}: {e}", path=str(path)) from e
            finally:
                if tmp_path.exists():
                    tmp_path.unlink()

            self._save_count += 1

        logger.debug(
            "Wrote snapshot",
            extra={"database": self.name, "path": str(path), "size_bytes": len(payload)},
        )

    async def save(self, snapshot: SnapshotSource) -> None:
        """Write a snapshot without blocking the event loop.

        Raises:
            PersistenceError: On any file system failure
        """
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.write, snapshot)

    def save_sync(self, snapshot: SnapshotSource) -> bool:
        """Write a snapshot, reporting failure as False.

        Returns:
            True if the snapshot was written
        """
        try:
            self.write(snapshot)
        except PersistenceError as e:
            logger.error(e.message, extra={"database": self.name, "path": e.path})
            return False
        return True

    def load(self) -> LoadedSnapshot:
        """Read and decode the snapshot.

        Returns:
            LoadedSnapshot with recompiled schemas and decoded rows

        Raises:
            NotFoundError: If no snapshot exists
            PersistenceError: If the snapshot is unreadable or inconsistent
        """
        path = self.path
        if not path.exists():
            raise NotFoundError(f"Database {self.name} does not exist", "database", self.name)

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to load db from {path}: {e}", path=str(path)) from e

        try:
            loaded = self._decode(data)
        except PersistenceError:
            raise
        except (RelStoreError, ValueError, TypeError, KeyError, AttributeError) as e:
            raise PersistenceError(f"Corrupted snapshot at {path}: {e}", path=str(path)) from e

        logger.debug(
            "Loaded snapshot",
            extra={
                "database": self.name,
                "path": str(path),
                "tables": len(loaded.schemas),
            },
        )
        return loaded

    def _decode(self, data: Any) -> LoadedSnapshot:
        path = str(self.path)
        if not isinstance(data, dict) or data.get("format") != SNAPSHOT_FORMAT:
            raise PersistenceError(f"{path} is not a relstore snapshot", path=path)
        if data.get("version") != SNAPSHOT_VERSION:
            raise PersistenceError(
                f"Unsupported snapshot version {data.get('version')!r} in {path}", path=path
            )

        schemas = SchemaSet.from_dict(data["schemas"])
        if data.get("fingerprint") != schemas.fingerprint:
            raise PersistenceError(
                f"Schema fingerprint mismatch in {path}: "
                f"stored {data.get('fingerprint')}, computed {schemas.fingerprint}",
                path=path,
            )

        stored_tables = data.get("tables", {})
        unknown = set(stored_tables) - set(schemas)
        if unknown:
            raise PersistenceError(f"Rows for undeclared tables {sorted(unknown)} in {path}", path=path)

        rows: Rows = {}
        for table_name, schema in schemas.items():
            rows[table_name] = {}
            for row_id, record in stored_tables.get(table_name, {}).items():
                if record.get(RESERVED_FIELD) != row_id:
                    raise PersistenceError(
                        f"Row {row_id} in table {table_name} has mismatched id", path=path
                    )
                rows[table_name][row_id] = decode_record(schema, record)

        self._verify_rows(schemas, rows)

        return LoadedSnapshot(
            name=data.get("name", self.name),
            autosave=bool(data.get("autosave", False)),
            schemas=schemas,
            rows=rows,
        )

    def _verify_rows(self, schemas: SchemaSet, rows: Rows) -> None:
        # dangling references are legal after deletes; check shape only
        path = str(self.path)
        validator = TypeValidator(rows)
        for table_name, table_rows in rows.items():
            schema = schemas[table_name]
            for row_id, record in table_rows.items():
                for spec in schema.get_required_fields():
                    if record.get(spec.name) is None:
                        raise PersistenceError(
                            f"Row {row_id} in table {table_name} is missing required field '{spec.name}'",
                            path=path,
                        )
                for name, value in record.items():
                    if name == RESERVED_FIELD:
                        continue
                    spec = schema.get_field(name)
                    if spec is None:
                        raise PersistenceError(
                            f"Row {row_id} in table {table_name} has undeclared field '{name}'",
                            path=path,
                        )
                    if value is None:
                        continue
                    if spec.is_reference:
                        valid = _is_reference_shape(spec.type, value)
                    else:
                        valid = validator.validate(spec.type, value)
                    if not valid:
                        raise PersistenceError(
                            f"Row {row_id} in table {table_name} has invalid value for '{name}'",
                            path=path,
                        )


def _is_reference_shape(field_type: FieldType, value: Any) -> bool:
    if isinstance(field_type, ArrayReference):
        return is_sequence(value) and all(isinstance(v, str) for v in value)
    return isinstance(value, str)
