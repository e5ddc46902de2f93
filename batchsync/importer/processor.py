"""
Processing of one buffered chunk: load, merge and write in one transaction.
"""

from collections.abc import Sequence
from dataclasses import asdict
from typing import Any

from batchsync.core.models import TableSpec
from batchsync.observability.logger import get_logger, log_operation
from batchsync.observability.metrics import chunk_duration_seconds, record_chunk, track_duration
from batchsync.warehouse.contracts import TransactionRunner

from .adapters import ModelRecordAdapter, PlainRecordAdapter
from .callbacks import CallbackDispatcher
from .loader import ExistingRowLoader
from .merge import ChunkPlan, MergeEngine
from .writer import ChunkStats, ChunkWriter

logger = get_logger(__name__)


class ChunkProcessor:
    """
    Sink of the import buffer.

    Each chunk runs in its own transaction: existing rows are loaded with
    row locks, records are classified and all writes are applied before
    commit. Callbacks are queued only after the chunk committed.
    """

    def __init__(
        self,
        table: TableSpec,
        transactions: TransactionRunner,
        adapter: PlainRecordAdapter | ModelRecordAdapter,
        loader: ExistingRowLoader,
        merge: MergeEngine,
        writer: ChunkWriter,
        callbacks: CallbackDispatcher,
    ):
        self.table = table
        self.transactions = transactions
        self.adapter = adapter
        self.loader = loader
        self.merge = merge
        self.writer = writer
        self.callbacks = callbacks
        self.totals = ChunkStats()

    def __call__(self, records: Sequence[Any]) -> ChunkStats:
        return self.process(records)

    def process(self, records: Sequence[Any]) -> ChunkStats:
        """
        Process one chunk.

        Args:
            records: Incoming records

        Returns:
            Chunk statistics

        Raises:
            PreconditionError: If a record is not accepted by the adapter
            psycopg.Error: If the database rejects the chunk (after rollback)
        """
        accepted = [self.adapter.incoming(record) for record in records]

        try:
            with log_operation(
                f"Import chunk into {self.table.name}",
                logger=logger,
                table=self.table.name,
                records=len(accepted),
            ) as operation:
                with track_duration(chunk_duration_seconds, table=self.table.name):
                    plan, stats = self.transactions.run(self.table, lambda: self._run(accepted))
                operation.add_fields(**asdict(stats))
        except Exception:
            record_chunk(self.table.name, len(accepted), success=False)
            raise

        record_chunk(
            self.table.name,
            len(accepted),
            inserted=stats.inserted,
            updated=stats.updated,
            touched=stats.touched,
            unchanged=stats.unchanged,
        )
        self._add_totals(stats)

        for record in (*plan.inserts, *plan.updates):
            self.adapter.written(record)

        self.callbacks.dispatch(plan.inserts, plan.updated_for_callbacks)

        return stats

    def _run(self, records: list[Any]) -> tuple[ChunkPlan, ChunkStats]:
        existing = self.loader.load(records)
        plan = self.merge.plan(records, existing)
        return plan, self.writer.apply(plan)

    def _add_totals(self, stats: ChunkStats) -> None:
        self.totals = ChunkStats(
            inserted=self.totals.inserted + stats.inserted,
            updated=self.totals.updated + stats.updated,
            touched=self.totals.touched + stats.touched,
            unchanged=self.totals.unchanged + stats.unchanged,
        )
