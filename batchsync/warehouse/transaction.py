"""
Transaction runner backed by the connection pool.
"""

from collections.abc import Callable
from typing import TypeVar

from batchsync.core.models import TableSpec
from batchsync.observability.logger import get_logger

from .connection import DatabaseConnectionPool

T = TypeVar("T")

logger = get_logger(__name__)


class PoolTransactionRunner:
    """
    Runs units of work in a pooled connection transaction.

    Every persistence call made by the unit of work through the same pool
    shares the transaction's connection, so the row locks taken by
    SELECT ... FOR UPDATE are held until commit or rollback.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool

    def run(self, table: TableSpec, fn: Callable[[], T]) -> T:
        """
        Run fn atomically.

        Args:
            table: Table the unit of work writes to
            fn: Unit of work

        Returns:
            Whatever fn returns

        Raises:
            Any exception raised by fn or by the database, after rollback
        """
        try:
            with self.pool.transaction():
                return fn()
        except Exception as e:
            logger.error(
                f"Transaction rolled back for table '{table.name}'",
                extra={
                    "table": table.name,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
            )
            raise
