"""
Prepared import: incremental front-end of a configured batch import.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from batchsync.core.buffer import FlushingBuffer
from batchsync.core.errors import ConfigurationError

from .callbacks import CallbackDispatcher
from .processor import ChunkProcessor
from .writer import ChunkStats


class PreparedBatchImport:
    """
    Accepts records one by one or from any iterable and imports them in chunks.

    The batch id is allocated when the import is prepared and is the same
    for all chunks. Memory use is bounded by the buffer size, regardless
    of how many records are added.

    Example:
        >>> prepared = import_.prepare()
        >>> for row in reader:
        ...     prepared.add(row)
        >>> batch_id = prepared.flush()
    """

    def __init__(
        self,
        buffer: FlushingBuffer,
        callbacks: CallbackDispatcher,
        batch_id: str | None,
        processor: ChunkProcessor | None = None,
    ):
        self.buffer = buffer
        self.callbacks = callbacks
        self.batch_id = batch_id
        self.processor = processor

    def add(self, record: Any) -> "PreparedBatchImport":
        """Add a single record; a full buffer is imported before returning."""
        self.buffer.add(record)
        return self

    def add_multiple(self, records: Iterable[Any]) -> "PreparedBatchImport":
        """
        Add records from a collection or a lazily produced sequence.

        Raises:
            ConfigurationError: If records is not an iterable of records
        """
        if isinstance(records, (str, bytes, Mapping)) or not isinstance(records, Iterable):
            raise ConfigurationError(
                f"Expected iterable of records, got {type(records).__name__}"
            )

        self.buffer.add_multiple(records)
        return self

    def flush(self) -> str | None:
        """
        Import all pending records and deliver pending callbacks.

        Safe to call repeatedly.

        Returns:
            The batch id of this import (None if batching is disabled)
        """
        self.buffer.flush()
        self.callbacks.flush()
        return self.batch_id

    @property
    def stats(self) -> ChunkStats:
        """Totals of all chunks written so far."""
        if self.processor is None:
            return ChunkStats()
        return self.processor.totals
