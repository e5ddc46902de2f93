"""
Record adapters.

An adapter hides how records are read, written and compared, so that the
merge engine handles plain mappings (bypass mode) and TableRecord models
(rich mode) alike.

Plain mappings are compared loosely, or through per-field raw comparators.
TableRecords are compared strictly against the snapshot taken when the row
was loaded, with both values normalized through the field's declared type.
"""

from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel

from batchsync.core.comparison import loosely_differs
from batchsync.core.errors import ConfigurationError, PreconditionError
from batchsync.core.models import TableRecord

RawComparator = Callable[[Any, Any, Mapping[str, Any]], bool]


class PlainRecordAdapter:
    """
    Adapter for plain dictionaries (bypass mode).

    Casts and mutators do not run. Incoming dictionaries are modified in place
    when batch id and timestamps are stamped on them.
    """

    def __init__(self, comparators: Mapping[str, RawComparator] | None = None):
        """
        Args:
            comparators: Mapping of field name to fn(new_value, existing_value,
                existing_record) returning True if the values differ
        """
        comparators = dict(comparators or {})
        for name, comparator in comparators.items():
            if not callable(comparator):
                raise ConfigurationError(
                    f"Expected callable for comparator of field '{name}', got {type(comparator).__name__}"
                )
        self.comparators = comparators

    def incoming(self, record: Any) -> dict[str, Any]:
        """
        Accept an incoming record.

        Raises:
            PreconditionError: If a model instance is given instead of a mapping
        """
        if isinstance(record, BaseModel):
            raise PreconditionError(
                "Expected data mapping instead of record model when model bypass is activated"
            )
        if isinstance(record, dict):
            return record
        if isinstance(record, Mapping):
            return dict(record)

        raise PreconditionError(f"Expected data mapping, got {type(record).__name__}")

    def existing(self, row: Mapping[str, Any]) -> dict[str, Any]:
        return dict(row)

    def get(self, record: Mapping[str, Any], name: str) -> Any:
        return record.get(name)

    def set(self, record: dict[str, Any], name: str, value: Any) -> None:
        record[name] = value

    def merge_field(self, existing: dict[str, Any], name: str, value: Any, check: bool) -> bool:
        """
        Write a value onto an existing record.

        Args:
            existing: Existing record
            name: Field name
            value: New value
            check: Whether to compare the value against the current one

        Returns:
            True if checked and the value differs
        """
        dirty = False
        if check:
            existing_value = existing.get(name)
            comparator = self.comparators.get(name)
            if comparator is not None:
                dirty = bool(comparator(value, existing_value, existing))
            else:
                dirty = loosely_differs(value, existing_value)

        existing[name] = value
        return dirty

    def written(self, record: dict[str, Any]) -> None:
        """Plain mappings carry no state about the stored row."""

    def to_row(self, record: Mapping[str, Any]) -> dict[str, Any]:
        return dict(record)


class ModelRecordAdapter:
    """
    Adapter for TableRecord models (rich mode).

    Incoming mappings are validated into the record class, so casts and
    mutators apply. Every assignment runs them again.
    """

    def __init__(self, record_class: type[TableRecord]):
        self.record_class = record_class

    def incoming(self, record: Any) -> TableRecord:
        """
        Accept an incoming record, validating plain mappings into the record class.

        Raises:
            PreconditionError: If the record is neither a mapping nor an
                instance of the record class
        """
        if isinstance(record, self.record_class):
            return record
        if isinstance(record, Mapping):
            return self.record_class.model_validate(dict(record))

        raise PreconditionError(
            f"Expected {self.record_class.__name__} or data mapping, got {type(record).__name__}"
        )

    def existing(self, row: Mapping[str, Any]) -> TableRecord:
        return self.record_class.from_row(dict(row))

    def get(self, record: TableRecord, name: str) -> Any:
        return record.get_field(name)

    def set(self, record: TableRecord, name: str, value: Any) -> None:
        record.set_field(name, value)

    def merge_field(self, existing: TableRecord, name: str, value: Any, check: bool) -> bool:
        """Assign through the model, then compare against the loaded snapshot."""
        existing.set_field(name, value)
        return check and existing.is_field_modified(name)

    def written(self, record: TableRecord) -> None:
        """Take the written values as the record's new snapshot."""
        record.sync_original()

    def to_row(self, record: TableRecord) -> dict[str, Any]:
        return record.to_row()


def make_adapter(
    record_class: type[TableRecord] | None,
    bypass: bool,
    comparators: Mapping[str, RawComparator] | None = None,
) -> PlainRecordAdapter | ModelRecordAdapter:
    """
    Select the adapter for an import.

    Raises:
        PreconditionError: If rich mode is requested without a record class
    """
    if bypass:
        return PlainRecordAdapter(comparators)

    if record_class is None:
        raise PreconditionError(
            "Table has no record class. Activate bypass_model() to import plain mappings."
        )

    return ModelRecordAdapter(record_class)
