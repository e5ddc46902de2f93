"""
Dirty checking and merging of incoming records into existing rows.

Each incoming record of a chunk is classified as an insert, an update, or
an unchanged match. Unchanged matches only need their batch id refreshed.
"""

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from batchsync.core.comparison import comparison_key
from batchsync.core.models import MatchField, TableSpec, UpdateField

from .adapters import ModelRecordAdapter, PlainRecordAdapter


@dataclass
class ChunkPlan:
    """
    Classification of one chunk.

    Attributes:
        inserts: New records, stamped and ready to insert
        updates: Merged existing records with at least one changed field
        touch_keys: Primary keys of unchanged matches needing a batch id refresh
        updated_for_callbacks: Updated records passing the callback trigger
        unchanged: Number of unchanged matches (touched or not)
    """

    inserts: list[Any] = field(default_factory=list)
    updates: list[Any] = field(default_factory=list)
    touch_keys: list[Any] = field(default_factory=list)
    updated_for_callbacks: list[Any] = field(default_factory=list)
    unchanged: int = 0


class MergeEngine:
    """
    Classifies incoming records against the existing rows of their chunk.
    """

    def __init__(
        self,
        table: TableSpec,
        match_fields: Sequence[MatchField],
        update_fields: Sequence[UpdateField],
        adapter: PlainRecordAdapter | ModelRecordAdapter,
        batch_id: str | None = None,
        batch_id_field: str | None = None,
        trigger_fields: Iterable[str] = (),
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Args:
            table: Target table
            match_fields: Match specification
            update_fields: Fields written to matched rows
            adapter: Record adapter
            batch_id: Batch id to stamp (None if batching is disabled)
            batch_id_field: Column storing the batch id
            trigger_fields: Fields whose change triggers the updated callbacks
                (empty: any change does)
            clock: Function returning the current timestamp
        """
        self.table = table
        self.match_fields = list(match_fields)
        self.update_fields = list(update_fields)
        self.adapter = adapter
        self.batch_id = batch_id
        self.batch_id_field = batch_id_field
        self.trigger_fields = frozenset(trigger_fields)
        self.clock = clock

    def plan(self, records: Sequence[Any], existing_by_key: dict[str, Any]) -> ChunkPlan:
        """
        Classify a chunk of incoming records.

        Args:
            records: Incoming records in arrival order
            existing_by_key: Existing records by comparison key

        Returns:
            The chunk plan
        """
        plan = ChunkPlan()
        now = self.clock() if self.table.timestamps and self.clock else None

        for record in records:
            key = comparison_key(record, self.match_fields, self.adapter.get)
            existing = existing_by_key.get(key) if key is not None else None

            if existing is None:
                plan.inserts.append(self._stamp_insert(record, now))
                continue

            is_dirty, should_invoke_callbacks = self._merge(record, existing)

            if is_dirty:
                self._stamp_update(existing, now)
                plan.updates.append(existing)

                if should_invoke_callbacks:
                    plan.updated_for_callbacks.append(existing)
            else:
                plan.unchanged += 1
                if self.batch_id is not None:
                    plan.touch_keys.append(self.adapter.get(existing, self.table.primary_key))

        return plan

    def _merge(self, record: Any, existing: Any) -> tuple[bool, bool]:
        is_dirty = False
        should_invoke_callbacks = False

        for spec in self.update_fields:
            value = spec.resolve(self.adapter.get(record, spec.name), existing, record)

            # Comparison is skipped once both flags are settled, but every value is written
            is_trigger = spec.name in self.trigger_fields
            check = not is_dirty or (not should_invoke_callbacks and is_trigger)

            field_dirty = self.adapter.merge_field(existing, spec.name, value, check)

            if check:
                if field_dirty:
                    is_dirty = True

                if self.trigger_fields:
                    should_invoke_callbacks = should_invoke_callbacks or (field_dirty and is_trigger)
                else:
                    should_invoke_callbacks = is_dirty

        return is_dirty, should_invoke_callbacks

    def _stamp_update(self, existing: Any, now: datetime | None) -> None:
        if self.batch_id is not None:
            self.adapter.set(existing, self.batch_id_field, self.batch_id)
        if now is not None:
            self.adapter.set(existing, self.table.updated_at_column, now)

    def _stamp_insert(self, record: Any, now: datetime | None) -> Any:
        if self.batch_id is not None:
            self.adapter.set(record, self.batch_id_field, self.batch_id)
        if now is not None:
            self.adapter.set(record, self.table.updated_at_column, now)
            self.adapter.set(record, self.table.created_at_column, now)
        return record
