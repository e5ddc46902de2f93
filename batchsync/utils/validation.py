"""
Input validation utilities for batch import configuration.

Provides reusable validation functions for field names, SQL identifiers
and buffer sizes so that invalid configuration fails before any query
is sent to the database.
"""

import re

from batchsync.core.errors import ConfigurationError

# PostgreSQL limit for identifiers
MAX_IDENTIFIER_LENGTH = 63


def validate_field_name(name: str, field_name: str = "field name") -> str:
    """
    Validate a record field name used in match or update specifications.

    Args:
        name: The field name to validate
        field_name: Description of the value (for error messages)

    Returns:
        The field name (unchanged)

    Raises:
        ConfigurationError: If the name is not a string or blank

    Examples:
        >>> validate_field_name("sku")
        'sku'
        >>> validate_field_name("  ")  # doctest: +SKIP
        ConfigurationError: Empty field name given.
    """
    if not isinstance(name, str):
        raise ConfigurationError(
            f"Expected string for {field_name}, got {type(name).__name__}"
        )

    if not name.strip():
        raise ConfigurationError("Empty field name given.")

    return name


def validate_buffer_size(size: int, field_name: str = "Buffer size") -> int:
    """
    Validate a buffer capacity.

    Args:
        size: The capacity to validate
        field_name: Description of the value (for error messages)

    Returns:
        The validated capacity

    Raises:
        ConfigurationError: If size is not a positive integer
    """
    if isinstance(size, bool) or not isinstance(size, int):
        raise ConfigurationError(f"{field_name} must be an integer, got {type(size).__name__}")

    if size < 1:
        raise ConfigurationError(f"{field_name} must be greater than 0.")

    return size


def sanitize_sql_identifier(
    identifier: str,
    field_name: str = "identifier",
    allow_reserved: bool = False,
) -> str:
    """
    Sanitize an SQL identifier (table name, column name, sequence name).

    This is a strict validation that only allows safe SQL identifiers.
    Identifiers are additionally quoted when composed into statements.

    Args:
        identifier: The identifier to sanitize
        field_name: Name of the field (for error messages)
        allow_reserved: Accept reserved keywords. Column names are always
            quoted, so "user" or "index" are valid columns.

    Returns:
        The validated identifier

    Raises:
        ConfigurationError: If validation fails

    Examples:
        >>> sanitize_sql_identifier("products")
        'products'
        >>> sanitize_sql_identifier("last_batch_id")
        'last_batch_id'
        >>> sanitize_sql_identifier("products; DROP TABLE products;")  # doctest: +SKIP
        ConfigurationError: identifier contains invalid characters
    """
    if not identifier or not isinstance(identifier, str):
        raise ConfigurationError(f"{field_name} must be a non-empty string")

    identifier = identifier.strip()

    # SQL identifiers: alphanumeric and underscores only, must start with letter or underscore
    if not re.match(r'^[a-zA-Z_][a-zA-Z0-9_]*$', identifier):
        raise ConfigurationError(
            f"{field_name} '{identifier}' contains invalid characters. "
            "SQL identifiers must start with a letter or underscore and contain only "
            "alphanumeric characters and underscores."
        )

    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise ConfigurationError(
            f"{field_name} exceeds PostgreSQL maximum length of {MAX_IDENTIFIER_LENGTH} characters"
        )

    # Prevent SQL reserved keywords (basic check)
    reserved_keywords = {
        "select", "insert", "update", "delete", "drop", "create", "alter",
        "table", "database", "index", "view", "user", "grant", "revoke"
    }
    if not allow_reserved and identifier.lower() in reserved_keywords:
        raise ConfigurationError(
            f"{field_name} '{identifier}' is a reserved SQL keyword. "
            "Please use a different name."
        )

    return identifier


def validate_file_path(file_path: str, field_name: str = "file_path") -> str:
    """
    Validate an input file path given on the command line.

    Args:
        file_path: The file path to validate
        field_name: Name of the field (for error messages)

    Returns:
        The validated file path (stripped of whitespace)

    Raises:
        ConfigurationError: If validation fails
    """
    if not file_path or not isinstance(file_path, str):
        raise ConfigurationError(f"{field_name} must be a non-empty string")

    file_path = file_path.strip()

    if not file_path:
        raise ConfigurationError(f"{field_name} cannot be empty or whitespace-only")

    # Check for null bytes (security)
    if "\x00" in file_path:
        raise ConfigurationError(f"{field_name} contains null bytes")

    return file_path
