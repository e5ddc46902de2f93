"""
Factory creating batch imports with their collaborators.
"""

from collections.abc import Callable
from datetime import datetime

from batchsync.core.models import TableRecord, TableSpec
from batchsync.warehouse.connection import DatabaseConnectionPool
from batchsync.warehouse.contracts import Persistence, TransactionRunner
from batchsync.warehouse.persistence import PostgresPersistence
from batchsync.warehouse.transaction import PoolTransactionRunner

from .batch_import import BatchImport


class BatchImportFactory:
    """
    Creates BatchImport instances sharing one persistence and transaction runner.

    Example:
        >>> factory = BatchImportFactory.from_pool(pool)
        >>> Product.batch_import(factory).match_by("sku").import_records(rows)
    """

    def __init__(
        self,
        persistence: Persistence,
        transactions: TransactionRunner,
        clock: Callable[[], datetime] | None = None,
    ):
        self.persistence = persistence
        self.transactions = transactions
        self.clock = clock

    @classmethod
    def from_pool(cls, pool: DatabaseConnectionPool, **kwargs) -> "BatchImportFactory":
        """Create a factory writing to PostgreSQL through the given pool."""
        return cls(PostgresPersistence(pool), PoolTransactionRunner(pool), **kwargs)

    def create(self, target: TableSpec | type[TableRecord]) -> BatchImport:
        return BatchImport(target, self.persistence, self.transactions, clock=self.clock)
