"""Bulk span ingestion.

Splits a batch into bounded chunks and keeps at most one chunk in flight:
each chunk is submitted, the drain barrier is awaited, and the chunk's
acknowledgement is checked before the next one goes out.
"""

import time
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import TypeVar

import structlog

from tracelens.common.config import IngestionSettings, get_settings
from tracelens.common.exceptions import SpanIngestionError
from tracelens.common.logging import get_logger
from tracelens.common.metrics import INGESTION_CHUNKS, INGESTION_LATENCY, SPANS_INGESTED
from tracelens.ingestion.backpressure import BackpressureMonitor
from tracelens.schemas.span import Span
from tracelens.storage.base import SpanStore

DEFAULT_CHUNK_SIZE = 100

T = TypeVar("T")


def partition(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Split items into contiguous chunks of at most ``size``.

    Args:
        items: Items to split.
        size: Maximum chunk length.

    Yields:
        Chunks in input order.
    """
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


@dataclass(frozen=True)
class IngestionResult:
    """Completion signal for an ingest call."""

    spans: int
    chunks: int
    duration_seconds: float


class SpanIngestor:
    """Writes span batches to a store without saturating it."""

    def __init__(
        self,
        store: SpanStore,
        monitor: BackpressureMonitor | None = None,
        settings: IngestionSettings | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        """Initialize ingestor.

        Args:
            store: Store to write to.
            monitor: Drain barrier. Built from settings if not provided.
            settings: Ingestion settings. Uses global settings if not provided.
            logger: Logger to use instead of the module logger.
        """
        if settings is None:
            settings = get_settings().ingestion

        self._store = store
        self._logger = logger or get_logger(__name__)
        self._monitor = monitor or BackpressureMonitor.from_settings(
            store, settings, logger=self._logger
        )
        self._chunk_size = settings.chunk_size

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    async def ingest(self, spans: Sequence[Span]) -> IngestionResult:
        """Write spans chunk by chunk.

        Args:
            spans: Spans to write, in any order.

        Returns:
            Ingestion result once every chunk is acknowledged and drained.

        Raises:
            SpanIngestionError: A chunk failed. Later chunks were not
                submitted; earlier chunks stay written. Also raised when
                the final drain times out or is cancelled.
        """
        start_time = time.perf_counter()
        written = 0
        chunks = 0

        for index, chunk in enumerate(partition(spans, self._chunk_size)):
            try:
                ack = self._store.write(chunk)
                await self._monitor.drain()
                await ack
            except Exception as e:
                INGESTION_CHUNKS.labels(status="failed").inc()
                self._logger.error(
                    "Span chunk write failed",
                    chunk=index,
                    chunk_spans=len(chunk),
                    spans_written=written,
                    error=str(e),
                )
                raise SpanIngestionError(
                    f"Writing chunk {index} failed",
                    details={
                        "chunk": index,
                        "chunk_spans": len(chunk),
                        "spans_written": written,
                        "spans_total": len(spans),
                    },
                    cause=e,
                ) from e

            INGESTION_CHUNKS.labels(status="written").inc()
            SPANS_INGESTED.inc(len(chunk))
            written += len(chunk)
            chunks += 1

        # Make the whole batch visible to readers
        try:
            await self._monitor.drain()
        except Exception as e:
            self._logger.error("Final drain failed", spans_written=written, error=str(e))
            raise SpanIngestionError(
                "Final drain failed",
                details={"spans_written": written, "spans_total": len(spans)},
                cause=e,
            ) from e

        duration = time.perf_counter() - start_time
        INGESTION_LATENCY.observe(duration)

        self._logger.info(
            "Spans ingested",
            spans=written,
            chunks=chunks,
            duration_ms=round(duration * 1000, 2),
        )

        return IngestionResult(spans=written, chunks=chunks, duration_seconds=duration)
