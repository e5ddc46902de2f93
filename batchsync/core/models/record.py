"""
TableRecord: rich record model with casts, mutators and change tracking.
"""

from functools import lru_cache
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel, ConfigDict, PrivateAttr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .table import TableSpec

if TYPE_CHECKING:
    from batchsync.importer.batch_import import BatchImport
    from batchsync.importer.factory import BatchImportFactory


@lru_cache(maxsize=256)
def _type_adapter(annotation: Any) -> TypeAdapter:
    return TypeAdapter(annotation)


class TableRecord(BaseModel):
    """
    Base class for rich records of a table.

    Field annotations act as casts and field validators act as mutators: both
    run when a record is constructed and on every assignment. Rows loaded from
    the database bypass validation (see from_row) and keep a snapshot of the
    loaded values, which is_field_modified() compares against.

    Subclasses configure the table through class variables:
        __tablename__: Table name
        __primary_key__: Primary key column (None if the table has none)
        __timestamps__: Whether created/updated timestamps are maintained
        __created_at__ / __updated_at__: Timestamp column names

    Optional capabilities, picked up once by table_spec():
        next_batch_id() (classmethod): returns the next batch id
        batch_id_field() (classmethod): returns the batch id column name

    Example:
        >>> class Product(TableRecord):
        ...     __tablename__ = "products"
        ...     id: int | None = None
        ...     sku: str
        ...     price: int | None = None
    """

    model_config = ConfigDict(extra="allow", validate_assignment=True)

    __tablename__: ClassVar[str | None] = None
    __primary_key__: ClassVar[str | None] = "id"
    __timestamps__: ClassVar[bool] = True
    __created_at__: ClassVar[str] = "created_at"
    __updated_at__: ClassVar[str] = "updated_at"

    _original: dict[str, Any] = PrivateAttr(default_factory=dict)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "TableRecord":
        """
        Build a record from a database row without running casts or mutators.

        Args:
            row: Column values as returned by the database

        Returns:
            Record with the row as original snapshot
        """
        record = cls.model_construct(**row)
        record._original = dict(row)
        return record

    @classmethod
    def table_spec(cls) -> TableSpec:
        """Describe the table of this record class, including its capabilities."""
        if not cls.__tablename__:
            raise TypeError(f"{cls.__name__} does not define __tablename__")

        generator = getattr(cls, "next_batch_id", None)
        field_provider = getattr(cls, "batch_id_field", None)

        return TableSpec(
            name=cls.__tablename__,
            primary_key=cls.__primary_key__,
            timestamps=cls.__timestamps__,
            created_at_column=cls.__created_at__,
            updated_at_column=cls.__updated_at__,
            batch_id_field=field_provider() if callable(field_provider) else None,
            batch_id_generator=generator if callable(generator) else None,
            record_class=cls,
        )

    @classmethod
    def batch_import(cls, factory: "BatchImportFactory") -> "BatchImport":
        """Create a new batch import for this record class."""
        return factory.create(cls)

    def get_key(self) -> Any:
        if not self.__primary_key__:
            return None
        return self.get_field(self.__primary_key__)

    def get_field(self, name: str) -> Any:
        """Return a field value, None if the field is not set."""
        if name in type(self).model_fields:
            return getattr(self, name)
        return (self.__pydantic_extra__ or {}).get(name)

    def set_field(self, name: str, value: Any) -> None:
        """Assign a field value, running casts and mutators."""
        setattr(self, name, value)

    def is_field_modified(self, name: str) -> bool:
        """
        Compare the current value of a field against the loaded snapshot.

        Both values are normalized through the field's declared type, so
        "09" and 9 are equivalent on an int field.
        """
        current = self._normalize(name, self.get_field(name))
        original = self._normalize(name, self._original.get(name))

        if current is None or original is None:
            return current is not original

        return current != original

    def sync_original(self) -> None:
        """Take the current values as the new snapshot, after they were written."""
        self._original = self.to_row(exclude_unset=False)

    def to_row(self, exclude_unset: bool = True) -> dict[str, Any]:
        """
        Dump the record as column values.

        Args:
            exclude_unset: Only include fields that were explicitly set

        Returns:
            Dictionary of column name to value
        """
        return self.model_dump(exclude_unset=exclude_unset)

    def _normalize(self, name: str, value: Any) -> Any:
        if value is None:
            return None

        field = type(self).model_fields.get(name)
        if field is None or field.annotation is None:
            return value

        try:
            return _type_adapter(field.annotation).validate_python(value)
        except (PydanticValidationError, TypeError):
            return value
