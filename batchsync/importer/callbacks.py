"""
Buffered delivery of inserted and updated records to observers.
"""

from collections.abc import Callable, Sequence
from typing import Any

from batchsync.core.buffer import FlushingBuffer

RecordsCallback = Callable[[list[Any]], Any]


class CallbackDispatcher:
    """
    Three independent callback channels: inserted, updated, inserted-or-updated.

    Each channel buffers records and calls all of its observers with the
    accumulated list when the buffer is full and on flush(), so observers
    see every affected record exactly once per import.
    """

    def __init__(
        self,
        size: int,
        inserted: Sequence[RecordsCallback] = (),
        updated: Sequence[RecordsCallback] = (),
        inserted_or_updated: Sequence[RecordsCallback] = (),
    ):
        """
        Args:
            size: Capacity of each channel buffer
            inserted: Observers of inserted records
            updated: Observers of updated records
            inserted_or_updated: Observers of both
        """
        self.inserted = FlushingBuffer(size, self._notify(list(inserted)))
        self.updated = FlushingBuffer(size, self._notify(list(updated)))
        self.inserted_or_updated = FlushingBuffer(size, self._notify(list(inserted_or_updated)))

    @staticmethod
    def _notify(callbacks: list[RecordsCallback]) -> RecordsCallback:
        def sink(records: list[Any]) -> None:
            for callback in callbacks:
                callback(records)

        return sink

    def dispatch(self, inserted: Sequence[Any], updated: Sequence[Any]) -> None:
        """
        Queue the affected records of a written chunk.

        Args:
            inserted: Inserted records
            updated: Updated records passing the callback trigger
        """
        self.inserted.add_multiple(inserted)
        self.updated.add_multiple(updated)
        self.inserted_or_updated.add_multiple(inserted)
        self.inserted_or_updated.add_multiple(updated)

    def flush(self) -> None:
        self.inserted.flush()
        self.updated.flush()
        self.inserted_or_updated.flush()
