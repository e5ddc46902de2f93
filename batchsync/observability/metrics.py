"""
Prometheus metrics collection for batchsync

This module provides metrics instrumentation for monitoring
import throughput, chunk latency and write outcomes.
"""
import os
from prometheus_client import (
    Counter,
    Histogram,
    CollectorRegistry,
)
from typing import Optional


# Global registry for metrics
REGISTRY = CollectorRegistry()


# =======================
# IMPORT METRICS
# =======================

# Records classified per outcome
records_total = Counter(
    name="batchsync_records_total",
    documentation="Total number of records processed by batch imports",
    labelnames=["table", "outcome"],  # outcome: inserted, updated, touched, unchanged
    registry=REGISTRY,
)

# Chunks processed counter
chunks_total = Counter(
    name="batchsync_chunks_total",
    documentation="Total number of chunks processed",
    labelnames=["table", "status"],  # status: success, failure
    registry=REGISTRY,
)

# Chunk transaction duration
chunk_duration_seconds = Histogram(
    name="batchsync_chunk_duration_seconds",
    documentation="Time spent loading, merging and writing one chunk",
    labelnames=["table"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
    registry=REGISTRY,
)

# Chunk size
chunk_size_records = Histogram(
    name="batchsync_chunk_size_records",
    documentation="Number of records in each chunk",
    labelnames=["table"],
    buckets=[1, 10, 50, 100, 500, 1000, 5000, 10000],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def start_metrics_server(port: Optional[int] = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    # Lazy import: the HTTP server is only needed when the endpoint is enabled
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


# =======================
# CONTEXT MANAGERS
# =======================

class track_duration:
    """
    Context manager for tracking operation duration

    Usage:
        with track_duration(chunk_duration_seconds, table="products"):
            # do work
            pass
    """

    def __init__(self, histogram: Histogram, **labels):
        """
        Initialize duration tracker

        Args:
            histogram: Prometheus Histogram metric
            **labels: Label values for the metric
        """
        self.histogram = histogram
        self.labels = labels
        self.timer = None

    def __enter__(self):
        """Start timer"""
        self.timer = self.histogram.labels(**self.labels).time()
        self.timer.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Stop timer"""
        self.timer.__exit__(exc_type, exc_val, exc_tb)
        return False


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """
    Increment a counter metric

    Args:
        counter: Prometheus Counter metric
        value: Amount to increment (default: 1.0)
        **labels: Label values for the metric
    """
    counter.labels(**labels).inc(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    """
    Observe a value in a histogram metric

    Args:
        histogram: Prometheus Histogram metric
        value: Value to observe
        **labels: Label values for the metric
    """
    histogram.labels(**labels).observe(value)


# =======================
# CHUNK HELPERS
# =======================

def record_chunk(
    table: str,
    record_count: int,
    inserted: int = 0,
    updated: int = 0,
    touched: int = 0,
    unchanged: int = 0,
    success: bool = True,
) -> None:
    """
    Record the outcome of one processed chunk.

    Args:
        table: Target table name
        record_count: Number of records in the chunk
        inserted: Records inserted
        updated: Records updated
        touched: Unchanged records whose batch id was refreshed
        unchanged: Unchanged records left as they were
        success: Whether the chunk transaction committed
    """
    status = "success" if success else "failure"
    increment_counter(chunks_total, 1, table=table, status=status)
    observe_histogram(chunk_size_records, record_count, table=table)

    if not success:
        return

    for outcome, count in (
        ("inserted", inserted),
        ("updated", updated),
        ("touched", touched),
        ("unchanged", unchanged),
    ):
        if count > 0:
            increment_counter(records_total, count, table=table, outcome=outcome)
