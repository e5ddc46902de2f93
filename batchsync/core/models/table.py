"""
TableSpec model describing the table a batch import writes to.
"""

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from batchsync.utils.validation import sanitize_sql_identifier

DEFAULT_BATCH_ID_FIELD = "last_batch_id"


class TableSpec(BaseModel):
    """
    Target table of a batch import, including its optional capabilities.

    Attributes:
        name: Table name
        primary_key: Primary key column (None if the table has none)
        timestamps: Whether created/updated timestamp columns are maintained
        created_at_column: Column receiving the insert timestamp
        updated_at_column: Column receiving the last update timestamp
        batch_id_field: Column storing the batch id (capability, optional)
        batch_id_generator: Function returning the next batch id (capability, optional)
        record_class: TableRecord subclass used for rich records (optional)
    """

    model_config = ConfigDict(
        frozen=True,
        arbitrary_types_allowed=True,
        json_schema_extra={
            "example": {
                "name": "products",
                "primary_key": "id",
                "timestamps": True,
                "batch_id_field": "last_batch_id",
            }
        },
    )

    name: str = Field(..., min_length=1)
    primary_key: str | None = "id"
    timestamps: bool = False
    created_at_column: str = "created_at"
    updated_at_column: str = "updated_at"
    batch_id_field: str | None = None
    batch_id_generator: Callable[[], Any] | None = None
    record_class: type | None = None

    @field_validator("name")
    @classmethod
    def check_identifier(cls, v: str) -> str:
        return sanitize_sql_identifier(v)

    @field_validator("primary_key", "batch_id_field", "created_at_column", "updated_at_column")
    @classmethod
    def check_column(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return sanitize_sql_identifier(v, "column name", allow_reserved=True)

    @property
    def generates_batch_ids(self) -> bool:
        return self.batch_id_generator is not None

    def next_batch_id(self) -> Any:
        """Draw the next batch id from the table's generator."""
        if self.batch_id_generator is None:
            raise RuntimeError(f"Table '{self.name}' does not generate batch ids")
        return self.batch_id_generator()

    def resolve_batch_id_field(self, override: str | None = None) -> str:
        """
        Column storing the batch id.

        Priority: explicit override, the table's batch_id_field capability,
        then DEFAULT_BATCH_ID_FIELD.
        """
        if override:
            return sanitize_sql_identifier(override, "batch id field", allow_reserved=True)
        return self.batch_id_field or DEFAULT_BATCH_ID_FIELD
