"""
PostgreSQL persistence for batch imports.

Statements are composed with psycopg.sql so that table and column names are
always quoted identifiers and values are always bound parameters. All
statements run on the pool's active transaction connection when called
inside a transaction scope.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from psycopg import sql

from batchsync.core.models import TableSpec
from batchsync.utils.validation import sanitize_sql_identifier

from .connection import DatabaseConnectionPool
from .contracts import ChunkPredicate, FieldCondition

# PostgreSQL accepts at most 65535 bind parameters per statement
MAX_PARAMETERS = 65535


def _column(name: str) -> sql.Identifier:
    return sql.Identifier(sanitize_sql_identifier(name, "column name", allow_reserved=True))


def _table(table: TableSpec) -> sql.Identifier:
    return sql.Identifier(table.name)


def condition_sql(condition: FieldCondition) -> tuple[sql.Composable, list[Any]]:
    """
    Compose the SQL for one field condition.

    Args:
        condition: Field condition with distinct non-null values

    Returns:
        Tuple of (composable, parameters)
    """
    column = _column(condition.field)
    values = list(condition.values)
    parts: list[sql.Composable] = []

    if len(values) == 1:
        parts.append(sql.SQL("{} = %s").format(column))
    elif values:
        parts.append(
            sql.SQL("{} IN ({})").format(
                column, sql.SQL(", ").join([sql.Placeholder()] * len(values))
            )
        )

    if condition.match_null:
        parts.append(sql.SQL("{} IS NULL").format(column))

    if len(parts) == 1:
        return parts[0], values

    return sql.SQL("({})").format(sql.SQL(" OR ").join(parts)), values


class PostgresPersistence:
    """
    Persistence implementation backed by a DatabaseConnectionPool.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Initialize persistence.

        Args:
            pool: Database connection pool
        """
        self.pool = pool

    def select_for_update(self, table: TableSpec, predicate: ChunkPredicate) -> list[dict[str, Any]]:
        """
        Select the rows matching a chunk predicate with FOR UPDATE locks.

        Args:
            table: Target table
            predicate: Conjunction of field conditions

        Returns:
            List of rows as dictionaries
        """
        clauses = []
        params: list[Any] = []
        for condition in predicate.restrictive_conditions():
            clause, values = condition_sql(condition)
            clauses.append(clause)
            params.extend(values)

        query = sql.SQL("SELECT * FROM {}").format(_table(table))
        if clauses:
            query = sql.SQL("{} WHERE {}").format(query, sql.SQL(" AND ").join(clauses))
        query = sql.SQL("{} FOR UPDATE").format(query)

        return self.pool.execute_query(query, params)

    def bulk_update(
        self,
        table: TableSpec,
        rows: Sequence[Mapping[str, Any]],
        key_field: str,
        fields: Sequence[str],
    ) -> int:
        """
        Update rows by key, writing only the given fields.

        Args:
            table: Target table
            rows: Rows containing the key and the fields to write
            key_field: Key column used to address rows
            fields: Columns to write

        Returns:
            Number of rows updated
        """
        if not rows or not fields:
            return 0

        command = sql.SQL("UPDATE {} SET {} WHERE {} = %s").format(
            _table(table),
            sql.SQL(", ").join(sql.SQL("{} = %s").format(_column(f)) for f in fields),
            _column(key_field),
        )

        params_list = [
            tuple(row.get(f) for f in fields) + (row[key_field],)
            for row in rows
        ]

        self.pool.execute_batch(command, params_list)
        return len(params_list)

    def bulk_insert(self, table: TableSpec, rows: Sequence[Mapping[str, Any]]) -> int:
        """
        Insert rows with multi-row INSERT statements.

        Rows are grouped by their column set. A None primary key is left out
        so that the database assigns it.

        Args:
            table: Target table
            rows: Rows to insert

        Returns:
            Number of rows inserted
        """
        groups: dict[tuple[str, ...], list[tuple[Any, ...]]] = {}
        for row in rows:
            columns = tuple(
                name for name, value in row.items()
                if not (name == table.primary_key and value is None)
            )
            groups.setdefault(columns, []).append(tuple(row[c] for c in columns))

        inserted = 0
        for columns, values in groups.items():
            if not columns:
                command = sql.SQL("INSERT INTO {} DEFAULT VALUES").format(_table(table))
                for _ in values:
                    self.pool.execute_command(command)
                inserted += len(values)
                continue

            per_statement = max(1, MAX_PARAMETERS // len(columns))
            for start in range(0, len(values), per_statement):
                batch = values[start:start + per_statement]
                row_sql = sql.SQL("({})").format(
                    sql.SQL(", ").join([sql.Placeholder()] * len(columns))
                )
                command = sql.SQL("INSERT INTO {} ({}) VALUES {}").format(
                    _table(table),
                    sql.SQL(", ").join(_column(c) for c in columns),
                    sql.SQL(", ").join([row_sql] * len(batch)),
                )
                params = [value for row_values in batch for value in row_values]
                inserted += self.pool.execute_command(command, params)

        return inserted

    def update_where_key_in(
        self,
        table: TableSpec,
        keys: Sequence[Any],
        field: str,
        value: Any,
    ) -> int:
        """
        Set one column for all rows whose key is in the list.

        Args:
            table: Target table
            keys: Primary key values
            field: Column to set
            value: Value to write

        Returns:
            Number of rows updated
        """
        if not keys:
            return 0

        command = sql.SQL("UPDATE {} SET {} = %s WHERE {} IN ({})").format(
            _table(table),
            _column(field),
            _column(table.primary_key),
            sql.SQL(", ").join([sql.Placeholder()] * len(keys)),
        )

        return self.pool.execute_command(command, [value, *keys])
