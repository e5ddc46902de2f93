"""
Contracts between the import engine and the database.

The engine only talks to the database through these protocols, so any
backend able to run locked selects, bulk updates and inserts in a
transaction can be plugged in.
"""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

from batchsync.core.models import TableSpec

T = TypeVar("T")


@dataclass(frozen=True)
class FieldCondition:
    """
    Condition on one column: value IN values, optionally OR column IS NULL.

    An empty value list without match_null does not restrict the column.
    """

    field: str
    values: tuple[Any, ...] = ()
    match_null: bool = False

    @property
    def is_restrictive(self) -> bool:
        return bool(self.values) or self.match_null


@dataclass(frozen=True)
class ChunkPredicate:
    """Conjunction of field conditions selecting the rows of one chunk."""

    conditions: tuple[FieldCondition, ...] = field(default_factory=tuple)

    def restrictive_conditions(self) -> tuple[FieldCondition, ...]:
        return tuple(c for c in self.conditions if c.is_restrictive)


class Persistence(Protocol):
    """Database operations needed by a batch import."""

    def select_for_update(self, table: TableSpec, predicate: ChunkPredicate) -> list[dict[str, Any]]:
        """Select rows matching the predicate and lock them until the transaction ends."""
        ...

    def bulk_update(
        self,
        table: TableSpec,
        rows: Sequence[Mapping[str, Any]],
        key_field: str,
        fields: Sequence[str],
    ) -> int:
        """Update many rows by key, writing only the listed fields."""
        ...

    def bulk_insert(self, table: TableSpec, rows: Sequence[Mapping[str, Any]]) -> int:
        """Insert many rows."""
        ...

    def update_where_key_in(
        self,
        table: TableSpec,
        keys: Sequence[Any],
        field: str,
        value: Any,
    ) -> int:
        """Set one column to a value for all rows whose key is listed."""
        ...


class TransactionRunner(Protocol):
    """Runs a unit of work atomically."""

    def run(self, table: TableSpec, fn: Callable[[], T]) -> T:
        """
        Run fn inside a transaction for the given table.

        Commits if fn returns, rolls back and re-raises if it raises.
        """
        ...
