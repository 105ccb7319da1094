"""
Unit tests for the in-memory table store.

Tests cover:
- Insert validation, id assignment and atomicity
- Required-field enforcement
- set_field validation and not-found handling
- Delete and fetch by id, including no-cascade deletes
- Mutation hook
"""

import datetime
import threading

import pytest

from relstore.errors import NotFoundError, ValidationError
from relstore.identifiers import IdentifierSource
from relstore.schema import compile_schemas
from relstore.store import TableStore


class TestTableStore:
    """Tests for TableStore."""

    @pytest.fixture
    def identifiers(self, sequential_ids):
        source = IdentifierSource(sequential_ids, buffer_size=2)
        yield source
        source.close()

    @pytest.fixture
    def store(self, shop_schema, identifiers):
        return TableStore(compile_schemas(shop_schema), identifiers)

    @pytest.fixture
    def ada(self, store):
        return store.insert("Person", {"name": "Ada", "age": 36})

    def test_insert_returns_record_with_id(self, store):
        """Insert assigns a non-empty id and keeps the values."""
        record = store.insert("Person", {"name": "Ada", "age": 36})

        assert record["id"]
        assert record["name"] == "Ada"
        assert record["age"] == 36
        assert store.find_by_id("Person", record["id"]) == record

    def test_insert_wrong_type_names_field(self, store):
        """A mistyped value raises ValidationError naming the field."""
        with pytest.raises(ValidationError) as exc_info:
            store.insert("Person", {"name": 7})

        assert exc_info.value.table == "Person"
        assert exc_info.value.field == "name"
        assert exc_info.value.value == 7

    def test_failed_insert_leaves_table_unchanged(self, store, ada):
        """Atomicity: row count, ids and counter are untouched on failure."""
        ids_before = store.ids("Person")
        count_before = store.schemas["Person"].count

        with pytest.raises(ValidationError):
            store.insert("Person", {"name": "Bob", "age": "forty"})

        assert store.ids("Person") == ids_before
        assert store.row_count("Person") == 1
        assert store.schemas["Person"].count == count_before

    def test_failed_insert_consumes_no_identifier(self, store, identifiers):
        """Validation happens before an id is drawn."""
        with pytest.raises(ValidationError):
            store.insert("Person", {"name": 1})

        record = store.insert("Person", {"name": "Ada"})
        assert record["id"] == "id-1"

    def test_required_field_missing(self, store):
        """Omitting a required field fails."""
        with pytest.raises(ValidationError) as exc_info:
            store.insert("Person", {"age": 3})
        assert exc_info.value.field == "name"
        assert store.row_count("Person") == 0

    def test_required_field_none(self, store):
        """None is never valid for a required field."""
        with pytest.raises(ValidationError, match="required"):
            store.insert("Person", {"name": None})

    def test_optional_field_none_allowed(self, store):
        """None clears an optional field."""
        record = store.insert("Person", {"name": "Ada", "age": None})
        assert record["age"] is None

    def test_unknown_field(self, store):
        """Undeclared fields are rejected."""
        with pytest.raises(ValidationError, match="Unknown field"):
            store.insert("Person", {"name": "Ada", "email": "ada@example.com"})

    def test_caller_cannot_supply_id(self, store):
        """id is assigned by the store only."""
        with pytest.raises(ValidationError) as exc_info:
            store.insert("Person", {"name": "Ada", "id": "mine"})
        assert exc_info.value.field == "id"

    def test_unknown_table(self, store):
        """Unknown table raises NotFoundError."""
        with pytest.raises(NotFoundError) as exc_info:
            store.insert("Robot", {"name": "R2"})
        assert exc_info.value.resource_type == "table"

    def test_ids_are_unique(self, shop_schema):
        """N inserts yield N distinct ids with the default generator."""
        with IdentifierSource(buffer_size=2) as identifiers:
            store = TableStore(compile_schemas(shop_schema), identifiers)
            ids = [store.insert("Person", {"name": f"p{i}"})["id"] for i in range(200)]

        assert len(set(ids)) == 200

    def test_counter_is_monotonic(self, store, ada):
        """The counter grows on insert and never shrinks."""
        store.insert("Person", {"name": "Bob"})
        store.delete_by_id("Person", ada["id"])

        assert store.schemas["Person"].count == 2
        assert store.row_count("Person") == 1

    def test_reference_to_existing_row(self, store, ada):
        """A reference to an inserted row is accepted."""
        pet = store.insert("Pet", {"name": "Rex", "owner": ada["id"]})
        assert pet["owner"] == ada["id"]

    def test_reference_to_missing_row(self, store):
        """A reference to a nonexistent row is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            store.insert("Pet", {"name": "Rex", "owner": "no-such-person"})
        assert exc_info.value.field == "owner"

    def test_self_reference_array(self, store, ada):
        """Array references into the same table."""
        bob = store.insert("Person", {"name": "Bob", "friends": [ada["id"]]})
        assert bob["friends"] == [ada["id"]]

        with pytest.raises(ValidationError):
            store.insert("Person", {"name": "Eve", "friends": [ada["id"], "ghost"]})

    def test_tuples_stored_as_lists(self, store):
        """Sequences are normalized to lists."""
        record = store.insert("Person", {"name": "Ada", "nicknames": ("Countess", "Enchantress")})
        assert record["nicknames"] == ["Countess", "Enchantress"]

    def test_stored_record_is_isolated(self, store):
        """Mutating the input or the result does not touch the stored row."""
        nicknames = ["Countess"]
        source = {"name": "Ada", "nicknames": nicknames}
        record = store.insert("Person", source)

        nicknames.append("x")
        source["name"] = "changed"
        record["name"] = "changed too"

        stored = store.find_by_id("Person", record["id"])
        assert stored["name"] == "Ada"
        assert stored["nicknames"] == ["Countess"]
        assert "id" not in source

    def test_set_field(self, store, ada):
        """set_field updates one field in place."""
        updated = store.set_field("Person", ada["id"], "age", 37)

        assert updated["age"] == 37
        assert updated["name"] == "Ada"
        assert store.find_by_id("Person", ada["id"])["age"] == 37

    def test_set_field_date(self, store, ada):
        """Dates are accepted for date fields."""
        born = datetime.date(1815, 12, 10)
        assert store.set_field("Person", ada["id"], "born", born)["born"] == born

    def test_set_field_invalid_value(self, store, ada):
        """A bad value raises ValidationError and leaves the row."""
        with pytest.raises(ValidationError):
            store.set_field("Person", ada["id"], "age", "old")
        assert store.find_by_id("Person", ada["id"])["age"] == 36

    def test_set_field_missing_row(self, store):
        """A missing row raises NotFoundError, not ValidationError."""
        with pytest.raises(NotFoundError) as exc_info:
            store.set_field("Person", "ghost", "age", 1)
        assert exc_info.value.resource_type == "row"
        assert exc_info.value.resource_id == "ghost"

    def test_set_field_id_is_immutable(self, store, ada):
        """id cannot be overwritten."""
        with pytest.raises(ValidationError):
            store.set_field("Person", ada["id"], "id", "other")

    def test_set_required_field_to_none(self, store, ada):
        """A required field cannot be cleared."""
        with pytest.raises(ValidationError):
            store.set_field("Person", ada["id"], "name", None)

    def test_delete_existing(self, store, ada):
        """delete_by_id returns True and removes the row."""
        assert store.delete_by_id("Person", ada["id"]) is True
        assert store.find_by_id("Person", ada["id"]) is None

    def test_delete_missing(self, store):
        """delete_by_id returns False for unknown ids."""
        assert store.delete_by_id("Person", "ghost") is False

    def test_delete_does_not_cascade(self, store, ada):
        """Rows referencing a deleted row keep their reference."""
        pet = store.insert("Pet", {"name": "Rex", "owner": ada["id"]})

        store.delete_by_id("Person", ada["id"])

        kept = store.find_by_id("Pet", pet["id"])
        assert kept["owner"] == ada["id"]
        # new references to the deleted row are rejected
        with pytest.raises(ValidationError):
            store.insert("Pet", {"name": "Fido", "owner": ada["id"]})

    def test_find_by_id_missing(self, store):
        """Unknown ids return None."""
        assert store.find_by_id("Person", "ghost") is None

    def test_mutation_hook(self, shop_schema, identifiers):
        """The hook fires once per successful mutation only."""
        calls = []
        store = TableStore(
            compile_schemas(shop_schema), identifiers, on_mutation=lambda: calls.append(1)
        )

        ada = store.insert("Person", {"name": "Ada"})
        with pytest.raises(ValidationError):
            store.insert("Person", {"name": 1})
        store.set_field("Person", ada["id"], "age", 1)
        store.delete_by_id("Person", "ghost")
        store.delete_by_id("Person", ada["id"])

        assert len(calls) == 3

    def test_concurrent_inserts(self, shop_schema):
        """Inserts from several threads all land with distinct ids."""
        with IdentifierSource(buffer_size=4) as identifiers:
            store = TableStore(compile_schemas(shop_schema), identifiers)

            def worker(n):
                for i in range(50):
                    store.insert("Person", {"name": f"w{n}-{i}"})

            threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        assert store.row_count("Person") == 200
        assert len(set(store.ids("Person"))) == 200
        assert store.schemas["Person"].count == 200
