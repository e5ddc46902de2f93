"""
Match and update field specifications.

Both are small tagged values: a match field is compared directly or through
a transform, an update field copies the incoming value, writes a static
value or derives the value with a transform.
"""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from batchsync.core.errors import ConfigurationError
from batchsync.utils.validation import validate_field_name


@dataclass(frozen=True)
class MatchField:
    """
    A field taking part in the comparison key.

    Attributes:
        name: Record field (and table column) name
        transform: Optional function (value, record) -> value applied before
            comparison. Transformed fields are never used in SQL conditions.
    """

    name: str
    transform: Callable[[Any, Any], Any] | None = None

    def __post_init__(self):
        validate_field_name(self.name, "match field")
        if self.transform is not None and not callable(self.transform):
            raise ConfigurationError(
                f"Expected callable for match field '{self.name}', got {type(self.transform).__name__}"
            )

    @property
    def is_direct(self) -> bool:
        """True if the raw column value is compared (usable in SQL)."""
        return self.transform is None

    def value_of(self, value: Any, record: Any) -> Any:
        """Return the value used for comparison."""
        if self.transform is None:
            return value
        return self.transform(value, record)


class UpdateMode(str, Enum):
    """How an update field obtains the value to write."""

    COPY = "copy"
    STATIC = "static"
    TRANSFORM = "transform"


@dataclass(frozen=True)
class UpdateField:
    """
    A field written to an existing row when a record matches.

    Attributes:
        name: Field (and column) name
        mode: copy, static or transform
        value: Static value or transform function
            fn(new_value, existing_record, incoming_record, spec) -> value
    """

    name: str
    mode: UpdateMode = UpdateMode.COPY
    value: Any = None

    def __post_init__(self):
        validate_field_name(self.name, "update field")
        if self.mode is UpdateMode.TRANSFORM and not callable(self.value):
            raise ConfigurationError(
                f"Expected callable for update field '{self.name}', got {type(self.value).__name__}"
            )

    @classmethod
    def copy(cls, name: str) -> "UpdateField":
        return cls(name)

    @classmethod
    def static(cls, name: str, value: Any) -> "UpdateField":
        return cls(name, UpdateMode.STATIC, value)

    @classmethod
    def derived(cls, name: str, transform: Callable[..., Any]) -> "UpdateField":
        return cls(name, UpdateMode.TRANSFORM, transform)

    def resolve(self, incoming_value: Any, existing: Any, incoming: Any) -> Any:
        """
        Compute the value to write onto the existing record.

        Args:
            incoming_value: Value of this field on the incoming record
            existing: The existing record being merged into
            incoming: The incoming record

        Returns:
            Value to assign
        """
        if self.mode is UpdateMode.COPY:
            return incoming_value
        if self.mode is UpdateMode.STATIC:
            return self.value
        return self.value(incoming_value, existing, incoming, self)


def _iter_spec_items(fields: Any, kind: str) -> Iterable[Any]:
    if isinstance(fields, (str, MatchField, UpdateField)):
        return [fields]
    if isinstance(fields, Mapping):
        return list(fields.items())
    if isinstance(fields, Iterable):
        return list(fields)
    raise ConfigurationError(f"Expected {kind} field list, got {type(fields).__name__}")


def parse_match_fields(fields: Any) -> list[MatchField]:
    """
    Normalize a match-by definition.

    Accepts a single field name, a mapping {name: transform}, or an iterable
    of names, (name, transform) tuples and MatchField instances.

    Raises:
        ConfigurationError: If the list is empty or an entry is invalid
    """
    parsed = []
    for item in _iter_spec_items(fields, "match"):
        if isinstance(item, MatchField):
            parsed.append(item)
        elif isinstance(item, str):
            parsed.append(MatchField(item))
        elif isinstance(item, tuple) and len(item) == 2:
            name, transform = item
            if transform is not None and not callable(transform):
                raise ConfigurationError(
                    f"Expected callable for match field '{name}', got {type(transform).__name__}"
                )
            parsed.append(MatchField(name, transform))
        else:
            raise ConfigurationError(
                f"Expected string for match field, got {type(item).__name__}"
            )

    if not parsed:
        raise ConfigurationError("At least one match by field is required")

    return parsed


def parse_update_fields(fields: Any) -> list[UpdateField]:
    """
    Normalize an update-if-exists definition.

    Accepts a single field name, a mapping {name: value}, or an iterable of
    names, (name, value) tuples and UpdateField instances. Callable values
    become transforms, anything else is written as a static value.

    Raises:
        ConfigurationError: If an entry is invalid
    """
    parsed = []
    for item in _iter_spec_items(fields, "update"):
        if isinstance(item, UpdateField):
            parsed.append(item)
        elif isinstance(item, str):
            parsed.append(UpdateField.copy(item))
        elif isinstance(item, tuple) and len(item) == 2:
            name, value = item
            if callable(value):
                parsed.append(UpdateField.derived(name, value))
            else:
                parsed.append(UpdateField.static(name, value))
        else:
            raise ConfigurationError(
                f"Expected string for update field, got {type(item).__name__}"
            )

    return parsed
