"""
Fixed-capacity buffer that hands its contents to a sink in batches.
"""

from collections.abc import Callable, Iterable
from typing import Any

from batchsync.utils.validation import validate_buffer_size


class FlushingBuffer:
    """
    Collects items and passes them to a sink function once full.

    The sink always receives the complete batch as one list, never single
    items. Flushing happens synchronously inside add()/add_multiple() as soon
    as the capacity is reached, and on demand via flush(). A failing sink is
    not retried; the error propagates to the caller.
    """

    def __init__(self, size: int, sink: Callable[[list[Any]], Any]):
        """
        Initialize buffer.

        Args:
            size: Capacity; the sink is invoked whenever this many items are pending
            sink: Function receiving the list of buffered items
        """
        self.size = validate_buffer_size(size)
        self.sink = sink
        self._items: list[Any] = []

    def add(self, item: Any) -> "FlushingBuffer":
        """Append a single item, flushing if the buffer becomes full."""
        self._items.append(item)

        if len(self._items) >= self.size:
            self._flush_pending()

        return self

    def add_multiple(self, items: Iterable[Any]) -> "FlushingBuffer":
        """
        Append items from any iterable.

        Iterables are consumed lazily, so generators are never materialized
        beyond the buffer capacity.
        """
        for item in items:
            self.add(item)

        return self

    def flush(self) -> "FlushingBuffer":
        """Pass pending items to the sink, if there are any."""
        if self._items:
            self._flush_pending()

        return self

    def _flush_pending(self) -> None:
        items = self._items
        self.sink(items)
        self._items = []

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(size={self.size}, pending={len(self._items)})"
