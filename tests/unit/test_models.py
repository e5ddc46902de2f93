"""
Unit tests for table, record and field specification models.
"""

from datetime import datetime

import pytest
from pydantic import ValidationError

from batchsync.core.errors import ConfigurationError
from batchsync.core.models import (
    MatchField,
    TableSpec,
    UpdateField,
    UpdateMode,
    parse_match_fields,
    parse_update_fields,
)

from tests.support import Item, ItemStoresBatchId, ItemWithBatch, ItemWithMutator, Stock


def lower(value, record):
    return value.lower()


class TestTableSpec:
    """Tests for TableSpec model"""

    def test_defaults(self):
        table = TableSpec(name="products")
        assert table.primary_key == "id"
        assert table.timestamps is False
        assert table.batch_id_field is None
        assert table.generates_batch_ids is False
        assert table.resolve_batch_id_field() == "last_batch_id"

    def test_batch_id_field_priority(self):
        table = TableSpec(name="products", batch_id_field="import_batch")
        assert table.resolve_batch_id_field() == "import_batch"
        assert table.resolve_batch_id_field("other_batch") == "other_batch"

    def test_generator(self):
        table = TableSpec(name="products", batch_id_generator=lambda: "7")
        assert table.generates_batch_ids is True
        assert table.next_batch_id() == "7"

    def test_next_batch_id_without_generator(self):
        with pytest.raises(RuntimeError):
            TableSpec(name="products").next_batch_id()

    @pytest.mark.parametrize("name", ["", "products; DROP TABLE x", "select", "1abc"])
    def test_invalid_table_name(self, name):
        with pytest.raises(ValidationError):
            TableSpec(name=name)

    def test_invalid_batch_id_field(self):
        with pytest.raises(ValidationError):
            TableSpec(name="products", batch_id_field="bad field")

    def test_frozen(self):
        table = TableSpec(name="products")
        with pytest.raises(ValidationError):
            table.name = "other"


class TestTableRecord:
    """Tests for TableRecord model"""

    def test_table_spec_from_class(self):
        table = Item.table_spec()
        assert table.name == "test_table"
        assert table.primary_key == "id"
        assert table.timestamps is True
        assert table.record_class is Item
        assert table.generates_batch_ids is False
        assert table.batch_id_field is None

    def test_table_spec_with_batch_capabilities(self):
        table = ItemWithBatch.table_spec()
        assert table.next_batch_id() == "25"
        assert table.batch_id_field == "c"

    def test_table_spec_with_batch_id_field_only(self):
        table = ItemStoresBatchId.table_spec()
        assert table.batch_id_field == "my_batch_id_field"
        assert table.generates_batch_ids is False

    def test_from_row_keeps_snapshot(self):
        record = Item.from_row({"id": 3, "a": "x", "b": None})
        assert record.get_key() == 3
        assert record.is_field_modified("a") is False

    def test_from_row_skips_validation(self):
        record = ItemWithMutator.from_row({"id": 1, "a": "raw"})
        assert record.a == "raw"

    def test_new_record_has_no_snapshot(self):
        record = Item(a="x")
        assert record.get_key() is None
        assert record.is_field_modified("a") is True

    def test_assignment_runs_mutator(self):
        record = ItemWithMutator(a="x")
        assert record.a == "mutated:x"

        record.set_field("a", "y")
        assert record.a == "mutated:y"

    def test_is_field_modified(self):
        record = Item.from_row({"id": 1, "a": "x", "b": "y"})
        record.set_field("a", "z")

        assert record.is_field_modified("a") is True
        assert record.is_field_modified("b") is False

    def test_is_field_modified_is_type_aware(self):
        record = Stock.from_row({"id": 1, "sku": "A", "quantity": "09"})
        record.set_field("quantity", 9)
        assert record.is_field_modified("quantity") is False

        record.set_field("quantity", "10")
        assert record.quantity == 10
        assert record.is_field_modified("quantity") is True

    def test_is_field_modified_with_none(self):
        record = Item.from_row({"id": 1, "a": "x", "b": None})
        record.set_field("b", None)
        assert record.is_field_modified("b") is False

        record.set_field("b", "")
        assert record.is_field_modified("b") is True

    def test_datetime_field_compared_by_value(self):
        record = Item.from_row({"id": 1, "a": "x", "d": datetime(2024, 1, 1, 10, 0)})
        record.set_field("d", "2024-01-01T10:00:00")
        assert record.is_field_modified("d") is False

    def test_extra_fields_are_kept(self):
        record = Item.from_row({"id": 1, "a": "x", "my_batch_id_field": 4})
        assert record.get_field("my_batch_id_field") == 4

        record.set_field("my_batch_id_field", 5)
        assert record.get_field("my_batch_id_field") == 5
        assert record.is_field_modified("my_batch_id_field") is True

    def test_missing_field_reads_none(self):
        assert Item(a="x").get_field("unknown") is None

    def test_to_row_excludes_unset(self):
        record = Item(a="x")
        record.set_field("last_batch_id", "19")
        assert record.to_row() == {"a": "x", "last_batch_id": 19}

    def test_sync_original(self):
        record = Item.from_row({"id": 1, "a": "x"})
        record.set_field("a", "y")
        record.sync_original()
        assert record.is_field_modified("a") is False

    def test_table_spec_requires_tablename(self):
        from batchsync.core.models import TableRecord

        class Unnamed(TableRecord):
            id: int | None = None

        with pytest.raises(TypeError):
            Unnamed.table_spec()


class TestMatchFields:
    """Tests for match field parsing"""

    def test_single_string(self):
        assert parse_match_fields("a") == [MatchField("a")]

    def test_list_of_names_and_tuples(self):
        fields = parse_match_fields(["a", ("b", lower), MatchField("c")])
        assert [f.name for f in fields] == ["a", "b", "c"]
        assert fields[0].is_direct is True
        assert fields[1].is_direct is False

    def test_mapping_of_transforms(self):
        fields = parse_match_fields({"a": lower})
        assert fields[0].value_of("ABC", {}) == "abc"

    def test_empty_list(self):
        with pytest.raises(ConfigurationError, match="At least one match by field is required"):
            parse_match_fields([])

    def test_non_string_entry(self):
        with pytest.raises(ConfigurationError, match="Expected string for match field"):
            parse_match_fields([1])

    def test_non_callable_transform(self):
        with pytest.raises(ConfigurationError, match="Expected callable"):
            parse_match_fields({"a": "lower"})

    @pytest.mark.parametrize("name", ["", "   "])
    def test_empty_name(self, name):
        with pytest.raises(ConfigurationError, match="Empty field name given."):
            parse_match_fields({name: lower})


class TestUpdateFields:
    """Tests for update field parsing"""

    def test_names_are_copied(self):
        fields = parse_update_fields(["a", "b"])
        assert [f.mode for f in fields] == [UpdateMode.COPY, UpdateMode.COPY]
        assert fields[0].resolve("new", {}, {}) == "new"

    def test_mapping_static_and_transform(self):
        fields = parse_update_fields({
            "a": "fixed",
            "b": lambda new, existing, incoming, spec: f"{existing['b']}+{new}",
        })
        assert fields[0] == UpdateField.static("a", "fixed")
        assert fields[0].resolve("ignored", {}, {}) == "fixed"
        assert fields[1].mode is UpdateMode.TRANSFORM
        assert fields[1].resolve("n", {"b": "old"}, {}) == "old+n"

    def test_transform_receives_spec(self):
        seen = []
        field = UpdateField.derived("a", lambda new, existing, incoming, spec: seen.append(spec))
        field.resolve(1, {}, {})
        assert seen == [field]

    def test_static_none_value(self):
        field = parse_update_fields([("a", None)])[0]
        assert field.mode is UpdateMode.STATIC
        assert field.resolve("x", {}, {}) is None

    def test_empty_list_allowed(self):
        assert parse_update_fields([]) == []

    def test_empty_name(self):
        with pytest.raises(ConfigurationError, match="Empty field name given."):
            parse_update_fields({" ": 1})

    def test_non_string_entry(self):
        with pytest.raises(ConfigurationError, match="Expected string for update field"):
            parse_update_fields([3])

    def test_transform_requires_callable(self):
        with pytest.raises(ConfigurationError):
            UpdateField("a", UpdateMode.TRANSFORM, "not callable")
