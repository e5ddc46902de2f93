"""
Exception hierarchy for batch imports.

Configuration errors are raised before any I/O happens. Precondition errors
are raised when a target or a record cannot take part in an import.
Database errors are never wrapped: they propagate as raised by psycopg.
"""


class BatchImportError(Exception):
    """Base class for errors raised by batchsync."""


class ConfigurationError(BatchImportError, ValueError):
    """Raised when an import is configured with invalid arguments."""


class PreconditionError(BatchImportError, RuntimeError):
    """Raised when a target table or a record violates an import precondition."""
