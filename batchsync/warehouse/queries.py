"""
Queries over batch id bookkeeping.

Every row written or confirmed by an import carries the import's batch id.
Rows whose batch id is lower than a given batch (or NULL) were not part of
that import and are considered missing from it.
"""

from typing import Any

from psycopg import sql

from batchsync.core.models import TableSpec
from batchsync.observability.logger import get_logger
from batchsync.utils.validation import sanitize_sql_identifier

from .connection import DatabaseConnectionPool

logger = get_logger(__name__)


class MissingAfterBatch:
    """
    Filter selecting rows not touched by a batch.

    Produces ("table"."field" < %s OR "table"."field" IS NULL) with the
    batch id as parameter. The filter is a composable and can be embedded
    into any query on the table.

    Example:
        >>> missing = MissingAfterBatch(products, 20)
        >>> query = sql.SQL("DELETE FROM {} WHERE {}").format(
        ...     sql.Identifier("products"), missing.filter())
        >>> pool.execute_command(query, missing.params)  # doctest: +SKIP
    """

    def __init__(self, table: TableSpec, batch_id: Any, batch_id_field: str | None = None):
        """
        Args:
            table: Target table
            batch_id: Batch id the rows are compared against
            batch_id_field: Batch id column (defaults to the table's field)
        """
        self.table = table
        self.batch_id = batch_id
        self.batch_id_field = table.resolve_batch_id_field(batch_id_field)

    def filter(self) -> sql.Composable:
        column = sql.Identifier(self.table.name, self.batch_id_field)
        return sql.SQL("({column} < %s OR {column} IS NULL)").format(column=column)

    @property
    def params(self) -> tuple[Any, ...]:
        return (str(self.batch_id),)

    def query(self) -> sql.Composable:
        """Full SELECT of the missing rows, ordered by primary key when there is one."""
        query = sql.SQL("SELECT * FROM {} WHERE {}").format(
            sql.Identifier(self.table.name), self.filter()
        )
        if self.table.primary_key:
            query = sql.SQL("{} ORDER BY {}").format(
                query, sql.Identifier(self.table.primary_key)
            )
        return query


def find_missing_after_batch(
    pool: DatabaseConnectionPool,
    table: TableSpec,
    batch_id: Any,
    batch_id_field: str | None = None,
) -> list[dict[str, Any]]:
    """
    Return the rows of a table that were not touched by a batch.

    Args:
        pool: Database connection pool
        table: Target table
        batch_id: Batch id to compare against
        batch_id_field: Batch id column (defaults to the table's field)

    Returns:
        List of rows as dictionaries
    """
    missing = MissingAfterBatch(table, batch_id, batch_id_field)
    rows = pool.execute_query(missing.query(), missing.params)

    logger.info(
        f"Found {len(rows)} rows missing after batch {batch_id}",
        extra={"table": table.name, "batch_id": str(batch_id), "missing": len(rows)},
    )

    return rows


class SequenceBatchIds:
    """
    Batch id generator drawing from a PostgreSQL sequence.

    Instances are callables and can be used as TableSpec.batch_id_generator.
    """

    def __init__(self, pool: DatabaseConnectionPool, sequence: str):
        """
        Args:
            pool: Database connection pool
            sequence: Sequence name
        """
        self.pool = pool
        self.sequence = sanitize_sql_identifier(sequence, "sequence name")

    def __call__(self) -> str:
        rows = self.pool.execute_query(
            sql.SQL("SELECT nextval({}) AS batch_id").format(sql.Literal(self.sequence))
        )
        return str(rows[0]["batch_id"])
