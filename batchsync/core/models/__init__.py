"""
Core data models for batch imports.

Table and record models use Pydantic for runtime validation and type safety.
"""

from .fields import (
    MatchField,
    UpdateField,
    UpdateMode,
    parse_match_fields,
    parse_update_fields,
)
from .record import TableRecord
from .table import DEFAULT_BATCH_ID_FIELD, TableSpec

__all__ = [
    "DEFAULT_BATCH_ID_FIELD",
    "TableSpec",
    "TableRecord",
    "MatchField",
    "UpdateField",
    "UpdateMode",
    "parse_match_fields",
    "parse_update_fields",
]
