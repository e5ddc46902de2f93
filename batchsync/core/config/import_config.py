"""
Import configuration management.

Loads import definitions from YAML files and turns them into configured
BatchImport instances.
"""

from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from batchsync.core.comparison import text_form
from batchsync.core.errors import ConfigurationError
from batchsync.core.models import TableSpec, UpdateField
from batchsync.utils.validation import sanitize_sql_identifier
from batchsync.warehouse.queries import SequenceBatchIds

if TYPE_CHECKING:
    from batchsync.importer.batch_import import BatchImport
    from batchsync.importer.factory import BatchImportFactory
    from batchsync.warehouse.connection import DatabaseConnectionPool


def _exact_differs(new_value: Any, existing_value: Any, existing: Any) -> bool:
    return new_value != existing_value


def _text_differs(new_value: Any, existing_value: Any, existing: Any) -> bool:
    if new_value is None or existing_value is None:
        return new_value is not existing_value
    return text_form(new_value) != text_form(existing_value)


def _case_insensitive_differs(new_value: Any, existing_value: Any, existing: Any) -> bool:
    if new_value is None or existing_value is None:
        return new_value is not existing_value
    return text_form(new_value).casefold() != text_form(existing_value).casefold()


# Raw comparators selectable by name in import definitions
NAMED_COMPARATORS = {
    "exact": _exact_differs,
    "text": _text_differs,
    "case_insensitive": _case_insensitive_differs,
}


class ImportDefinition(BaseModel):
    """
    One import as defined in a YAML configuration file.

    Definitions always import plain mappings (model bypass), fields are
    compared loosely unless a named comparator is configured for them.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    table: str
    primary_key: str = "id"
    timestamps: bool = False
    created_at_column: str = "created_at"
    updated_at_column: str = "updated_at"
    match_by: list[str] = Field(default_factory=list)
    update_if_exists: list[str] = Field(default_factory=list)
    static_values: dict[str, Any] = Field(default_factory=dict)
    on_updated_when: list[str] = Field(default_factory=list)
    buffer_size: int = Field(default=500, gt=0)
    callback_buffer_size: int | None = Field(default=None, gt=0)
    batch_id: str | int | None = None
    batch_id_field: str | None = None
    batch_id_sequence: str | None = None
    disable_batch_id: bool = False
    compare: dict[str, str] = Field(default_factory=dict)

    @field_validator("table")
    @classmethod
    def check_identifier(cls, v: str) -> str:
        return sanitize_sql_identifier(v)

    @field_validator("primary_key", "created_at_column", "updated_at_column", "batch_id_field")
    @classmethod
    def check_column(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return sanitize_sql_identifier(v, "column name", allow_reserved=True)

    @field_validator("batch_id_sequence")
    @classmethod
    def check_sequence(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return sanitize_sql_identifier(v, "sequence name")

    @field_validator("compare")
    @classmethod
    def check_comparators(cls, v: dict[str, str]) -> dict[str, str]:
        for field_name, comparator in v.items():
            if comparator not in NAMED_COMPARATORS:
                raise ValueError(
                    f"Unknown comparator '{comparator}' for field '{field_name}'. "
                    f"Must be one of: {', '.join(sorted(NAMED_COMPARATORS))}"
                )
        return v

    @model_validator(mode="after")
    def check_batch_id_source(self) -> "ImportDefinition":
        if self.batch_id is not None and self.batch_id_sequence is not None:
            raise ValueError("Only one of 'batch_id' and 'batch_id_sequence' may be given")
        return self

    def table_spec(self, pool: "DatabaseConnectionPool | None" = None) -> TableSpec:
        """
        Build the table spec, with a sequence generator if configured.

        Raises:
            ConfigurationError: If a batch id sequence is configured without pool
        """
        generator = None
        if self.batch_id_sequence is not None:
            if pool is None:
                raise ConfigurationError(
                    f"Import '{self.name}' draws batch ids from a sequence and requires a database pool"
                )
            generator = SequenceBatchIds(pool, self.batch_id_sequence)

        return TableSpec(
            name=self.table,
            primary_key=self.primary_key,
            timestamps=self.timestamps,
            created_at_column=self.created_at_column,
            updated_at_column=self.updated_at_column,
            batch_id_field=self.batch_id_field,
            batch_id_generator=generator,
        )

    def update_fields(self) -> list[UpdateField]:
        fields = [UpdateField.copy(name) for name in self.update_if_exists]
        fields.extend(UpdateField.static(name, value) for name, value in self.static_values.items())
        return fields

    def build(
        self,
        factory: "BatchImportFactory",
        pool: "DatabaseConnectionPool | None" = None,
    ) -> "BatchImport":
        """
        Create a configured BatchImport for this definition.

        Args:
            factory: Factory providing persistence and transactions
            pool: Database pool, required for sequence batch ids

        Returns:
            Configured batch import
        """
        batch_import = factory.create(self.table_spec(pool))

        if self.match_by:
            batch_import.match_by(self.match_by)

        batch_import.update_if_exists(self.update_fields())
        batch_import.on_updated_when(self.on_updated_when)
        batch_import.buffer(self.buffer_size, self.callback_buffer_size)
        batch_import.bypass_model(
            True,
            {name: NAMED_COMPARATORS[comparator] for name, comparator in self.compare.items()},
        )

        if self.disable_batch_id:
            batch_import.without_batch_id()
        elif self.batch_id is not None:
            batch_import.with_batch_id(self.batch_id, self.batch_id_field)

        return batch_import


class ImportConfigLoader:
    """
    Loads import definitions from YAML configuration files.

    Expected YAML format:
    ```yaml
    imports:
      products:
        table: products
        match_by: [sku]
        update_if_exists: [name, price]
        static_values:
          active: true
        on_updated_when: [price]
        buffer_size: 1000
        batch_id_sequence: products_batch_seq
        compare:
          name: case_insensitive
    ```
    """

    def __init__(self, config_path: str | Path):
        """
        Initialize the import config loader.

        Args:
            config_path: Path to the YAML configuration file
        """
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise FileNotFoundError(f"Import configuration file not found: {config_path}")

    def load(self) -> dict[str, ImportDefinition]:
        """
        Load and validate all import definitions.

        Returns:
            Mapping of import name to definition

        Raises:
            ConfigurationError: If YAML is invalid or a definition is malformed
        """
        with open(self.config_path) as f:
            try:
                config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {self.config_path}: {e}") from e

        if not config or "imports" not in config:
            raise ConfigurationError("Configuration file must contain 'imports' section")

        imports = config["imports"]
        if not isinstance(imports, dict):
            raise ConfigurationError("'imports' section must be a mapping of import names to definitions")

        definitions = {}
        for name, definition in imports.items():
            definitions[name] = self._parse_definition(name, definition)

        return definitions

    def get(self, name: str) -> ImportDefinition:
        """
        Load a single import definition by name.

        Raises:
            ConfigurationError: If no import with that name is defined
        """
        definitions = self.load()
        if name not in definitions:
            raise ConfigurationError(
                f"Import '{name}' not found in {self.config_path}. "
                f"Available: {', '.join(sorted(definitions)) or 'none'}"
            )
        return definitions[name]

    def _parse_definition(self, name: str, definition: Any) -> ImportDefinition:
        if not isinstance(definition, dict):
            raise ConfigurationError(f"Definition of import '{name}' must be a mapping")

        try:
            return ImportDefinition.model_validate({**definition, "name": name})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid definition of import '{name}': {e}") from e
