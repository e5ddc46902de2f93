"""
Batch id resolution.

A batch id is stamped on every row an import inserts, updates or confirms
unchanged. It comes from an explicit value, from the table's generator
capability, or is disabled.
"""

from typing import Any

from batchsync.core.models import TableSpec


class BatchIdResolver:
    """
    Resolves the batch id and the column storing it for one import.

    Attributes:
        table: Target table
        batch_id: Explicit batch id (None to use the table's generator)
        batch_id_field: Explicit batch id column (None to use the table's field)
        disabled: True if no batch id should be written at all
    """

    def __init__(
        self,
        table: TableSpec,
        batch_id: Any = None,
        batch_id_field: str | None = None,
        disabled: bool = False,
    ):
        self.table = table
        self.batch_id = batch_id
        self.batch_id_field = batch_id_field
        self.disabled = disabled

    def resolve_batch_id(self) -> str | None:
        """
        Return the batch id for a new prepared import.

        The table's generator is invoked on every call, so callers resolve
        once per prepared import and reuse the value for all chunks.
        """
        if self.disabled:
            return None

        if self.batch_id is not None:
            return str(self.batch_id)

        if self.table.generates_batch_ids:
            batch_id = self.table.next_batch_id()
            return None if batch_id is None else str(batch_id)

        return None

    def resolve_batch_id_field(self) -> str:
        """Explicit field, else the table's batch id field, else 'last_batch_id'."""
        return self.table.resolve_batch_id_field(self.batch_id_field)
