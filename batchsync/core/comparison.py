"""
Comparison keys and value comparison for matching records.

A comparison key joins the (transformed) match field values of a record
into one string. Following SQL semantics, a record with a NULL in any match
field never matches another record, so no key is built for it.
"""

import re
from collections.abc import Callable, Sequence
from decimal import Decimal, InvalidOperation
from typing import Any

from batchsync.core.models.fields import MatchField

KEY_SEPARATOR = "|"
KEY_ESCAPE = "~"

_NUMERIC_STRING = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")


def text_form(value: Any) -> str:
    """
    Stringify a value, normalizing numbers.

    Equal values of different numeric types (9, 9.0, Decimal("9.00"))
    produce the same text. Strings are kept as they are.
    """
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, Decimal):
        return _decimal_text(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def key_part(value: Any) -> str:
    """
    Stringify a single value for use in a comparison key.

    Numeric strings are read as numbers, so a value arriving as text
    ("10.00") keys the same as the row loaded from a numeric column
    (Decimal("10.00")).
    """
    if isinstance(value, str):
        number = _as_number(value)
        if number is not None:
            return _decimal_text(number)
    return text_form(value)


def _decimal_text(number: Decimal) -> str:
    if number.is_finite() and number.is_zero():
        return "0"
    return format(number.normalize(), "f")


def escape_key_part(text: str) -> str:
    """Escape separator and escape characters: '~' -> '~~', '|' -> '~|'."""
    return text.replace(KEY_ESCAPE, KEY_ESCAPE * 2).replace(KEY_SEPARATOR, KEY_ESCAPE + KEY_SEPARATOR)


def comparison_key(
    record: Any,
    match_fields: Sequence[MatchField],
    get_value: Callable[[Any, str], Any],
) -> str | None:
    """
    Build the comparison key of a record.

    Args:
        record: Incoming record or loaded row
        match_fields: Match specification, in order
        get_value: Function (record, field_name) -> value

    Returns:
        The key, or None if any contributing value is None
    """
    parts = []
    for field in match_fields:
        value = field.value_of(get_value(record, field.name), record)

        # NULL never equals anything, not even another NULL
        if value is None:
            return None

        parts.append(escape_key_part(key_part(value)))

    return KEY_SEPARATOR.join(parts)


def _as_number(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, Decimal)):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(repr(value))
    if isinstance(value, str) and _NUMERIC_STRING.match(value):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            return None
    return None


def loosely_differs(new_value: Any, existing_value: Any) -> bool:
    """
    Default change detection for raw (bypass mode) values.

    None and None are the same. Otherwise values are compared loosely:
    numeric values and numeric strings by number ("09" equals 9), anything
    else by its text form.
    """
    if new_value is None and existing_value is None:
        return False
    if new_value is None or existing_value is None:
        return True
    if new_value == existing_value:
        return False

    new_number = _as_number(new_value)
    existing_number = _as_number(existing_value)
    if new_number is not None and existing_number is not None:
        return new_number != existing_number

    return text_form(new_value) != text_form(existing_value)
