"""
Loading of the existing rows matching a chunk of incoming records.
"""

from collections.abc import Sequence
from typing import Any

from batchsync.core.comparison import comparison_key, text_form
from batchsync.core.models import MatchField, TableSpec
from batchsync.warehouse.contracts import ChunkPredicate, FieldCondition, Persistence

from .adapters import ModelRecordAdapter, PlainRecordAdapter


class ExistingRowLoader:
    """
    Loads and locks the existing counterparts of a chunk of records.

    Only direct match fields restrict the query. Transformed match fields
    cannot be evaluated by the database and are applied when the fetched
    rows are keyed.
    """

    def __init__(
        self,
        table: TableSpec,
        match_fields: Sequence[MatchField],
        persistence: Persistence,
        adapter: PlainRecordAdapter | ModelRecordAdapter,
    ):
        self.table = table
        self.match_fields = list(match_fields)
        self.persistence = persistence
        self.adapter = adapter

    def build_predicate(self, records: Sequence[Any]) -> ChunkPredicate:
        """
        Build the predicate selecting all candidate rows of a chunk.

        For each direct match field the distinct non-null values of the chunk
        are collected, and whether any record has no value for it.

        Args:
            records: Incoming records (already accepted by the adapter)

        Returns:
            Conjunction of one condition per direct match field
        """
        conditions = []
        for field in self.match_fields:
            if not field.is_direct:
                continue

            values: dict[str, Any] = {}
            match_null = False
            for record in records:
                value = self.adapter.get(record, field.name)
                if value is None:
                    match_null = True
                else:
                    values.setdefault(text_form(value), value)

            conditions.append(FieldCondition(field.name, tuple(values.values()), match_null))

        return ChunkPredicate(tuple(conditions))

    def load(self, records: Sequence[Any]) -> dict[str, Any]:
        """
        Select and lock the existing rows for a chunk.

        Must run inside the chunk's transaction so that the row locks are
        held until the chunk is written.

        Args:
            records: Incoming records (already accepted by the adapter)

        Returns:
            Mapping of comparison key to existing record. Rows without a
            comparison key are left out, they can never be matched.
        """
        rows = self.persistence.select_for_update(self.table, self.build_predicate(records))

        existing = {}
        for row in rows:
            record = self.adapter.existing(row)
            key = comparison_key(record, self.match_fields, self.adapter.get)
            if key is not None:
                existing[key] = record

        return existing
