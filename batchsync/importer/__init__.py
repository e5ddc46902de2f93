"""
Batch import engine.

Buffers incoming records, matches them against existing rows with locked
chunk queries, and inserts, updates or confirms them with batch id
bookkeeping, one transaction per chunk.
"""

from .batch_id import BatchIdResolver
from .batch_import import BatchImport
from .factory import BatchImportFactory
from .prepared import PreparedBatchImport
from .writer import ChunkStats

__all__ = [
    "BatchImport",
    "BatchImportFactory",
    "BatchIdResolver",
    "ChunkStats",
    "PreparedBatchImport",
]
