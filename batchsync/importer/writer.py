"""
Applies a chunk plan to the database.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from batchsync.core.models import TableSpec
from batchsync.warehouse.contracts import Persistence

from .adapters import ModelRecordAdapter, PlainRecordAdapter
from .merge import ChunkPlan


@dataclass(frozen=True)
class ChunkStats:
    """Number of records per outcome in one chunk."""

    inserted: int = 0
    updated: int = 0
    touched: int = 0
    unchanged: int = 0


class ChunkWriter:
    """
    Writes updates, batch id refreshes and inserts of a chunk, in that order.

    Must run inside the chunk's transaction.
    """

    def __init__(
        self,
        table: TableSpec,
        persistence: Persistence,
        adapter: PlainRecordAdapter | ModelRecordAdapter,
        update_field_names: Sequence[str],
        batch_id: str | None = None,
        batch_id_field: str | None = None,
        touch_chunk_size: int = 500,
    ):
        """
        Args:
            table: Target table
            persistence: Persistence implementation
            adapter: Record adapter
            update_field_names: Fields written to updated rows
            batch_id: Batch id (None if batching is disabled)
            batch_id_field: Column storing the batch id
            touch_chunk_size: Maximum number of keys per batch id refresh statement
        """
        self.table = table
        self.persistence = persistence
        self.adapter = adapter
        self.batch_id = batch_id
        self.batch_id_field = batch_id_field
        self.touch_chunk_size = touch_chunk_size
        self.write_fields = self._write_fields(update_field_names)

    def _write_fields(self, update_field_names: Sequence[str]) -> list[str]:
        fields = list(dict.fromkeys(update_field_names))
        if self.batch_id is not None and self.batch_id_field not in fields:
            fields.append(self.batch_id_field)
        if self.table.timestamps and self.table.updated_at_column not in fields:
            fields.append(self.table.updated_at_column)
        return fields

    def apply(self, plan: ChunkPlan) -> ChunkStats:
        """
        Write a chunk plan.

        Args:
            plan: Classified chunk

        Returns:
            Chunk statistics
        """
        key_field = self.table.primary_key

        if plan.updates:
            rows = [
                {
                    key_field: self.adapter.get(record, key_field),
                    **{name: self.adapter.get(record, name) for name in self.write_fields},
                }
                for record in plan.updates
            ]
            self.persistence.bulk_update(self.table, rows, key_field, self.write_fields)

        if plan.touch_keys:
            for start in range(0, len(plan.touch_keys), self.touch_chunk_size):
                self.persistence.update_where_key_in(
                    self.table,
                    plan.touch_keys[start:start + self.touch_chunk_size],
                    self.batch_id_field,
                    self.batch_id,
                )

        if plan.inserts:
            self.persistence.bulk_insert(
                self.table, [self.adapter.to_row(record) for record in plan.inserts]
            )

        return ChunkStats(
            inserted=len(plan.inserts),
            updated=len(plan.updates),
            touched=len(plan.touch_keys),
            unchanged=plan.unchanged - len(plan.touch_keys),
        )
