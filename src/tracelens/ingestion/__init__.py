"""Span ingestion with backpressure control."""

from tracelens.ingestion.backpressure import BackpressureMonitor
from tracelens.ingestion.ingestor import IngestionResult, SpanIngestor, partition

__all__ = [
    "BackpressureMonitor",
    "IngestionResult",
    "SpanIngestor",
    "partition",
]
