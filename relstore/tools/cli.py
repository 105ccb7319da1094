"""
Command-line tool for relstore databases.

Usage:
    relstore create shop --schema schema.json [--autosave]
    relstore tables shop
    relstore insert shop Person '{"name": "Ada", "age": 36}'
    relstore get shop Person <id>
    relstore find shop Person '{"name": "Ada"}'
    relstore set shop Person <id> age 37
    relstore delete shop Person <id>

All commands accept ``--data-dir`` (default: RELSTORE_DATA_DIR or ".").
Records are read and printed as JSON; ISO strings in date fields are
converted using the table schema.

Exit codes:
    0  success
    1  relstore error (message on stderr)
    2  usage error
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Optional, Sequence

import json_log_formatter

from ..config import Settings
from ..database import Database, create_database, load_database
from ..errors import RelStoreError
from ..snapshot.codec import decode_record, decode_value, encode_record

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings) -> None:
    """Configure root logging from settings.

    Args:
        settings: relstore settings (log_level, log_format)
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


class DatabaseCLI:
    """Implements the CLI commands against a Settings instance.

    Every method returns the text to print on stdout.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def create(self, name: str, schema_path: str, autosave: Optional[bool]) -> str:
        with open(schema_path, encoding="utf-8") as f:
            schema = json.load(f)

        with create_database(name, schema, autosave, settings=self.settings) as db:
            if not db.autosave and not db.save_sync():
                raise RelStoreError(f"Failed to write {db.path}")
            return f"Created {name} with tables: {', '.join(db.list_tables())}"

    def tables(self, name: str) -> str:
        with self._load(name) as db:
            lines = [f"{table}\t{db.store.row_count(table)}" for table in db.list_tables()]
            return "\n".join(lines)

    def insert(self, name: str, table: str, record_json: str) -> str:
        with self._load(name) as db:
            schema = db.store.get_schema(table)
            record = decode_record(schema, _parse_object(record_json))
            stored = db.insert(table, record)
            self._save(db)
            return _dump(encode_record(schema, stored))

    def get(self, name: str, table: str, row_id: str) -> Optional[str]:
        with self._load(name) as db:
            found = db.find_by_id(table, row_id)
            if found is None:
                return None
            return _dump(encode_record(db.store.get_schema(table), found))

    def find(self, name: str, table: str, predicate_json: Optional[str]) -> str:
        with self._load(name) as db:
            schema = db.store.get_schema(table)
            predicate = decode_record(schema, _parse_object(predicate_json or "{}"))
            rows = db.find(table, predicate)
            return _dump([encode_record(schema, row) for row in rows])

    def set_field(self, name: str, table: str, row_id: str, field_name: str, value_json: str) -> str:
        with self._load(name) as db:
            schema = db.store.get_schema(table)
            value = _parse_value(value_json)
            spec = schema.get_field(field_name)
            if spec is not None:
                value = decode_value(spec.type, value)
            updated = db.set_field(table, row_id, field_name, value)
            self._save(db)
            return _dump(encode_record(schema, updated))

    def delete(self, name: str, table: str, row_id: str) -> bool:
        with self._load(name) as db:
            removed = db.delete_by_id(table, row_id)
            if removed:
                self._save(db)
            return removed

    def _load(self, name: str) -> Database:
        return load_database(name, settings=self.settings)

    @staticmethod
    def _save(db: Database) -> None:
        # autosave already wrote the mutation
        if db.autosave:
            return
        if not db.save_sync():
            raise RelStoreError(f"Failed to write {db.path}")


def _parse_object(text: str) -> dict[str, Any]:
    value = _parse_value(text)
    if not isinstance(value, dict):
        raise RelStoreError("Expected a JSON object")
    return value


def _parse_value(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise RelStoreError(f"Invalid JSON: {e}") from e


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="relstore", description="relstore database tool")
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--data-dir", help="Directory holding snapshot files")

    subparsers = parser.add_subparsers(dest="command", required=True)

    create_parser = subparsers.add_parser("create", parents=[common], help="Create a database")
    create_parser.add_argument("name")
    create_parser.add_argument("--schema", "-s", required=True, help="Schema JSON file")
    create_parser.add_argument("--autosave", action="store_true", help="Save on every mutation")

    tables_parser = subparsers.add_parser("tables", parents=[common], help="List tables")
    tables_parser.add_argument("name")

    insert_parser = subparsers.add_parser("insert", parents=[common], help="Insert a record")
    insert_parser.add_argument("name")
    insert_parser.add_argument("table")
    insert_parser.add_argument("record", help="Record as a JSON object")

    get_parser = subparsers.add_parser("get", parents=[common], help="Fetch a record by id")
    get_parser.add_argument("name")
    get_parser.add_argument("table")
    get_parser.add_argument("id")

    find_parser = subparsers.add_parser("find", parents=[common], help="Query a table")
    find_parser.add_argument("name")
    find_parser.add_argument("table")
    find_parser.add_argument("predicate", nargs="?", help="Predicate as a JSON object")

    set_parser = subparsers.add_parser("set", parents=[common], help="Set one field of a record")
    set_parser.add_argument("name")
    set_parser.add_argument("table")
    set_parser.add_argument("id")
    set_parser.add_argument("field")
    set_parser.add_argument("value", help="New value as JSON")

    delete_parser = subparsers.add_parser("delete", parents=[common], help="Delete a record")
    delete_parser.add_argument("name")
    delete_parser.add_argument("table")
    delete_parser.add_argument("id")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point.

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)

    settings = Settings(data_dir=args.data_dir) if args.data_dir else Settings()
    setup_logging(settings)
    cli = DatabaseCLI(settings)

    try:
        if args.command == "create":
            print(cli.create(args.name, args.schema, args.autosave or None))

        elif args.command == "tables":
            print(cli.tables(args.name))

        elif args.command == "insert":
            print(cli.insert(args.name, args.table, args.record))

        elif args.command == "get":
            output = cli.get(args.name, args.table, args.id)
            if output is None:
                print(f"{args.id} does not exist in {args.table}", file=sys.stderr)
                return 1
            print(output)

        elif args.command == "find":
            print(cli.find(args.name, args.table, args.predicate))

        elif args.command == "set":
            print(cli.set_field(args.name, args.table, args.id, args.field, args.value))

        elif args.command == "delete":
            if not cli.delete(args.name, args.table, args.id):
                print(f"{args.id} does not exist in {args.table}", file=sys.stderr)
                return 1
            print(f"Deleted {args.id}")

    except (RelStoreError, OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
