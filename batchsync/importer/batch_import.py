"""
BatchImport: configuration surface of a batch import.

Example:
    >>> import_ = (
    ...     BatchImport(Product, persistence, transactions)
    ...     .match_by("sku")
    ...     .update_if_exists(["name", "price"])
    ...     .on_inserted(lambda records: print(len(records)))
    ...     .with_batch_id(19)
    ... )
    >>> import_.import_records(rows).last_batch_id
    '19'
"""

from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from batchsync.core.buffer import FlushingBuffer
from batchsync.core.errors import ConfigurationError, PreconditionError
from batchsync.core.models import (
    TableRecord,
    TableSpec,
    parse_match_fields,
    parse_update_fields,
)
from batchsync.utils.validation import validate_buffer_size, validate_field_name
from batchsync.warehouse.contracts import Persistence, TransactionRunner

from .adapters import RawComparator, make_adapter
from .batch_id import BatchIdResolver
from .callbacks import CallbackDispatcher, RecordsCallback
from .loader import ExistingRowLoader
from .merge import MergeEngine
from .prepared import PreparedBatchImport
from .processor import ChunkProcessor
from .writer import ChunkWriter

DEFAULT_BUFFER_SIZE = 500


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _require_callable(callback: Any, name: str) -> None:
    if not callable(callback):
        raise ConfigurationError(f"Expected callable for {name}, got {type(callback).__name__}")


class BatchImport:
    """
    Bulk insert-or-update of records into one table.

    Records are matched against existing rows by the match-by fields
    (default: primary key). Matched rows get the update fields written if
    any of them changed; unmatched records are inserted. Every inserted,
    updated or unchanged matched row gets the batch id, so rows not part of
    an import can be found afterwards with MissingAfterBatch.

    All configuration methods return the import itself.
    """

    def __init__(
        self,
        target: TableSpec | type[TableRecord],
        persistence: Persistence,
        transactions: TransactionRunner,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Args:
            target: Table spec or TableRecord subclass to import into
            persistence: Persistence implementation
            transactions: Transaction runner, one transaction per chunk
            clock: Function returning the current time for timestamps

        Raises:
            PreconditionError: If the table has no primary key
        """
        if isinstance(target, type) and issubclass(target, TableRecord):
            table = target.table_spec()
        elif isinstance(target, TableSpec):
            table = target
        else:
            raise ConfigurationError(
                f"Expected TableSpec or TableRecord subclass, got {type(target).__name__}"
            )

        if not table.primary_key:
            raise PreconditionError(
                f"Batch import requires a primary key. Table '{table.name}' does not have a primary key."
            )

        self.table = table
        self.persistence = persistence
        self.transactions = transactions
        self.clock = clock or utc_now

        self._match_fields = parse_match_fields(table.primary_key)
        self._update_fields = []
        self._trigger_fields: list[str] = []
        self._inserted_callbacks: list[RecordsCallback] = []
        self._updated_callbacks: list[RecordsCallback] = []
        self._inserted_or_updated_callbacks: list[RecordsCallback] = []
        self._batch_id: Any = None
        self._batch_id_field: str | None = None
        self._batch_id_disabled = False
        self._buffer_size = DEFAULT_BUFFER_SIZE
        self._callback_buffer_size = DEFAULT_BUFFER_SIZE
        self._bypass = False
        self._raw_comparators: dict[str, RawComparator] = {}
        self._last_batch_id: str | None = None

    def match_by(self, fields: Any) -> "BatchImport":
        """
        Set the fields identifying matching rows.

        Following SQL semantics, a None value in any of these fields never
        matches, not even another None.

        Args:
            fields: Field name, {name: transform} mapping, or list of names,
                (name, transform) tuples and MatchField instances. A transform
                fn(value, record) processes the value before comparison.

        Raises:
            ConfigurationError: If the list is empty or an entry is invalid
        """
        self._match_fields = parse_match_fields(fields)
        return self

    def update_if_exists(self, fields: Any) -> "BatchImport":
        """
        Set the fields written to rows that already exist.

        Args:
            fields: Field name, {name: value} mapping, or list of names,
                (name, value) tuples and UpdateField instances. A callable
                value fn(new_value, existing, incoming, spec) derives the
                value to write, any other value is written as is.
        """
        self._update_fields = parse_update_fields(fields)
        return self

    def on_updated_when(self, fields: Iterable[str]) -> "BatchImport":
        """Only invoke updated callbacks when one of these fields changed."""
        if isinstance(fields, str):
            fields = [fields]
        self._trigger_fields = [validate_field_name(f, "callback trigger field") for f in fields]
        return self

    def on_updated(self, callback: RecordsCallback) -> "BatchImport":
        _require_callable(callback, "updated callback")
        self._updated_callbacks.append(callback)
        return self

    def on_inserted(self, callback: RecordsCallback) -> "BatchImport":
        _require_callable(callback, "inserted callback")
        self._inserted_callbacks.append(callback)
        return self

    def on_inserted_or_updated(self, callback: RecordsCallback) -> "BatchImport":
        _require_callable(callback, "inserted or updated callback")
        self._inserted_or_updated_callbacks.append(callback)
        return self

    def with_batch_id(self, batch_id: Any, batch_id_field: str | None = None) -> "BatchImport":
        """
        Use a fixed batch id instead of the table's generator.

        Args:
            batch_id: Batch id, written as string
            batch_id_field: Batch id column (defaults to the table's field
                or 'last_batch_id')
        """
        if batch_id_field is not None:
            validate_field_name(batch_id_field, "batch id field")
        self._batch_id = batch_id
        self._batch_id_field = batch_id_field
        self._batch_id_disabled = False
        return self

    def without_batch_id(self) -> "BatchImport":
        """Do not write batch ids, even if the table generates them."""
        self._batch_id = None
        self._batch_id_disabled = True
        return self

    def buffer(self, size: int, callback_size: int | None = None) -> "BatchImport":
        """
        Set the chunk size and the callback buffer size.

        Args:
            size: Records per chunk (and keys per batch id refresh statement)
            callback_size: Records per callback invocation (defaults to size)

        Raises:
            ConfigurationError: If a size is not a positive integer
        """
        self._buffer_size = validate_buffer_size(size)
        self._callback_buffer_size = (
            size if callback_size is None
            else validate_buffer_size(callback_size, "Callback buffer size")
        )
        return self

    def bypass_model(
        self,
        value: bool = True,
        raw_comparators: Mapping[str, RawComparator] | None = None,
    ) -> "BatchImport":
        """
        Import plain mappings without record models.

        Faster, but casts and mutators do not run. Fields are compared loosely
        unless a raw comparator fn(new_value, existing_value, existing_record)
        is given for them, returning True if the values differ.

        Raises:
            ConfigurationError: If comparators are given while disabling bypass
        """
        if value:
            self._raw_comparators = dict(raw_comparators or {})
        elif raw_comparators:
            raise ConfigurationError(
                "Raw comparators are only applicable when bypass_model is activated"
            )
        else:
            self._raw_comparators = {}

        self._bypass = value
        return self

    @property
    def last_batch_id(self) -> str | None:
        """Batch id of the most recently prepared import."""
        return self._last_batch_id

    @property
    def buffer_size(self) -> int:
        return self._buffer_size

    @property
    def callback_buffer_size(self) -> int:
        return self._callback_buffer_size

    def prepare(self) -> PreparedBatchImport:
        """
        Create a prepared import with the current configuration.

        The batch id is resolved here, once.

        Raises:
            PreconditionError: If rich mode is used without a record class
        """
        adapter = make_adapter(self.table.record_class, self._bypass, self._raw_comparators)

        resolver = BatchIdResolver(
            self.table,
            batch_id=self._batch_id,
            batch_id_field=self._batch_id_field,
            disabled=self._batch_id_disabled,
        )
        batch_id = resolver.resolve_batch_id()
        batch_id_field = resolver.resolve_batch_id_field()
        self._last_batch_id = batch_id

        callbacks = CallbackDispatcher(
            self._callback_buffer_size,
            inserted=self._inserted_callbacks,
            updated=self._updated_callbacks,
            inserted_or_updated=self._inserted_or_updated_callbacks,
        )

        processor = ChunkProcessor(
            self.table,
            self.transactions,
            adapter,
            loader=ExistingRowLoader(self.table, self._match_fields, self.persistence, adapter),
            merge=MergeEngine(
                self.table,
                self._match_fields,
                self._update_fields,
                adapter,
                batch_id=batch_id,
                batch_id_field=batch_id_field,
                trigger_fields=self._trigger_fields,
                clock=self.clock,
            ),
            writer=ChunkWriter(
                self.table,
                self.persistence,
                adapter,
                [f.name for f in self._update_fields],
                batch_id=batch_id,
                batch_id_field=batch_id_field,
                touch_chunk_size=self._buffer_size,
            ),
            callbacks=callbacks,
        )

        return PreparedBatchImport(
            FlushingBuffer(self._buffer_size, processor),
            callbacks,
            batch_id,
            processor,
        )

    def import_records(self, records: Iterable[Any] | Callable[[], Iterable[Any]]) -> "BatchImport":
        """
        Import records in one go.

        Args:
            records: Iterable of records, or a function returning one

        Returns:
            The import; last_batch_id holds the batch id used
        """
        prepared = self.prepare()

        if callable(records):
            records = records()

        prepared.add_multiple(records)
        prepared.flush()

        return self
