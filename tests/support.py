"""
Test doubles and sample records shared by the test suites.

InMemoryPersistence evaluates chunk predicates the way PostgreSQL would
(IN lists, IS NULL branches) on plain dictionaries, and
InMemoryTransactionRunner restores the tables when a unit of work fails.
"""
import copy
from datetime import datetime, timezone

from pydantic import field_validator

from batchsync.core.comparison import key_part
from batchsync.core.models import TableRecord, TableSpec

POSTGRES_USER = "test_batchsync"
POSTGRES_PASSWORD = "test_password"
POSTGRES_DB = "test_batchsync"


class InMemoryPersistence:
    """Persistence implementation storing rows in dictionaries"""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.calls: list[tuple] = []
        self.fail_on: str | None = None
        self.failure: Exception | None = None
        self._next_id: dict[str, int] = {}

    def seed(self, table: TableSpec, *rows: dict) -> list[dict]:
        """Insert rows directly, assigning primary keys, and return copies"""
        stored = []
        for row in rows:
            stored.append(self._store(table, dict(row)))
        return [dict(r) for r in stored]

    def rows(self, table: TableSpec) -> list[dict]:
        return [dict(r) for r in self.tables.get(table.name, [])]

    def row(self, table: TableSpec, key) -> dict | None:
        for r in self.tables.get(table.name, []):
            if r.get(table.primary_key) == key:
                return dict(r)
        return None

    def _store(self, table: TableSpec, row: dict) -> dict:
        rows = self.tables.setdefault(table.name, [])
        if row.get(table.primary_key) is None:
            next_id = self._next_id.get(table.name, 1)
            row[table.primary_key] = next_id
            self._next_id[table.name] = next_id + 1
        else:
            self._next_id[table.name] = max(
                self._next_id.get(table.name, 1), int(row[table.primary_key]) + 1
            )
        rows.append(row)
        return row

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_on == operation:
            raise self.failure

    def select_for_update(self, table, predicate):
        self.calls.append(("select_for_update", predicate))
        self._maybe_fail("select_for_update")

        result = []
        for row in self.tables.get(table.name, []):
            if all(self._matches(row, c) for c in predicate.restrictive_conditions()):
                result.append(dict(row))
        return result

    @staticmethod
    def _matches(row, condition) -> bool:
        value = row.get(condition.field)
        if value is None:
            return condition.match_null
        return key_part(value) in {key_part(v) for v in condition.values}

    def bulk_update(self, table, rows, key_field, fields):
        self.calls.append(("bulk_update", [dict(r) for r in rows], key_field, list(fields)))
        self._maybe_fail("bulk_update")

        updated = 0
        for update in rows:
            for stored in self.tables.get(table.name, []):
                if stored.get(key_field) == update[key_field]:
                    for f in fields:
                        stored[f] = update.get(f)
                    updated += 1
        return updated

    def bulk_insert(self, table, rows):
        self.calls.append(("bulk_insert", [dict(r) for r in rows]))
        self._maybe_fail("bulk_insert")

        for row in rows:
            self._store(table, dict(row))
        return len(rows)

    def update_where_key_in(self, table, keys, field, value):
        self.calls.append(("update_where_key_in", list(keys), field, value))
        self._maybe_fail("update_where_key_in")

        updated = 0
        for stored in self.tables.get(table.name, []):
            if stored.get(table.primary_key) in keys:
                stored[field] = value
                updated += 1
        return updated

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]


class InMemoryTransactionRunner:
    """Runs units of work against InMemoryPersistence with rollback on error"""

    def __init__(self, persistence: InMemoryPersistence):
        self.persistence = persistence
        self.runs = 0
        self.rollbacks = 0

    def run(self, table, fn):
        self.runs += 1
        snapshot = copy.deepcopy(self.persistence.tables)
        next_ids = dict(self.persistence._next_id)
        try:
            return fn()
        except Exception:
            self.rollbacks += 1
            self.persistence.tables = snapshot
            self.persistence._next_id = next_ids
            raise


class FixedClock:
    """Clock returning a settable point in time"""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


# =======================
# SAMPLE RECORDS
# =======================

class Item(TableRecord):
    """Record of test_table"""

    __tablename__ = "test_table"

    id: int | None = None
    a: str | None = None
    b: str | None = None
    c: str | None = None
    d: datetime | None = None
    last_batch_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ItemWithBatch(Item):
    """Record generating its own batch ids, stored in column c"""

    @classmethod
    def next_batch_id(cls) -> str:
        return "25"

    @classmethod
    def batch_id_field(cls) -> str:
        return "c"


class ItemStoresBatchId(Item):
    """Record naming its batch id column"""

    @classmethod
    def batch_id_field(cls) -> str:
        return "my_batch_id_field"


class ItemWithMutator(Item):
    """Record prefixing field a on assignment"""

    @field_validator("a")
    @classmethod
    def mutate_a(cls, v):
        if v is None or v.startswith("mutated:"):
            return v
        return f"mutated:{v}"


class ItemWithoutPrimaryKey(Item):
    __primary_key__ = None


class Stock(TableRecord):
    """Record with a numeric field, without timestamps"""

    __tablename__ = "stock"
    __timestamps__ = False

    id: int | None = None
    sku: str
    quantity: int | None = None


def item_table(**kwargs) -> TableSpec:
    """Plain table spec of test_table (bypass mode imports)"""
    return TableSpec(**{"name": "test_table", "primary_key": "id", **kwargs})
