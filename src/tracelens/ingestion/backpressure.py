"""Backpressure control for span ingestion.

Span store writes are acknowledged asynchronously, so a read issued right
after a write may not observe it. The drain barrier waits until no host
has requests in flight before the caller moves on.
"""

import asyncio
import time

import structlog

from tracelens.common.config import IngestionSettings
from tracelens.common.exceptions import DrainCancelledError, DrainTimeoutError
from tracelens.common.logging import get_logger
from tracelens.common.metrics import DRAIN_POLLS, DRAIN_WAIT_SECONDS
from tracelens.storage.base import SpanStore

DEFAULT_POLL_INTERVAL = 0.1


class BackpressureMonitor:
    """Observes outstanding requests per connected host.

    ``drain`` is a poll loop: scan every connected host, and if any has
    requests in flight, sleep for the poll interval and rescan from
    scratch. Host state changes concurrently, so a scan is only trusted
    when it finds every host idle in one pass.
    """

    def __init__(
        self,
        store: SpanStore,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        """Initialize monitor.

        Args:
            store: Store whose in-flight requests are observed.
            poll_interval: Seconds to sleep after a scan finds a busy host.
            timeout: Default upper bound on a drain, unbounded if None.
            logger: Logger to use instead of the module logger.
        """
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")

        self._store = store
        self._poll_interval = poll_interval
        self._timeout = timeout
        self._logger = logger or get_logger(__name__)

    @classmethod
    def from_settings(
        cls,
        store: SpanStore,
        settings: IngestionSettings,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> "BackpressureMonitor":
        """Create a monitor from ingestion settings."""
        return cls(
            store,
            poll_interval=settings.drain_poll_interval_ms / 1000,
            timeout=settings.drain_timeout_seconds,
            logger=logger,
        )

    def _first_busy_host(self) -> tuple[str, int] | None:
        for host in self._store.connected_hosts():
            count = self._store.in_flight_count(host)
            if count > 0:
                return host, count
        return None

    async def drain(
        self,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> float:
        """Wait until every connected host has zero requests in flight.

        Args:
            timeout: Upper bound in seconds, overriding the monitor default.
            cancel: Event that aborts the wait when set.

        Returns:
            Seconds spent waiting.

        Raises:
            DrainTimeoutError: Hosts were still busy when the timeout expired.
            DrainCancelledError: ``cancel`` was set before hosts went idle.
        """
        if timeout is None:
            timeout = self._timeout

        start = time.monotonic()
        deadline = start + timeout if timeout is not None else None
        polls = 0

        while True:
            busy = self._first_busy_host()
            if busy is None:
                break

            host, count = busy
            polls += 1
            DRAIN_POLLS.inc()

            if cancel is not None and cancel.is_set():
                raise DrainCancelledError(details={"host": host, "in_flight": count})
            if deadline is not None and time.monotonic() >= deadline:
                raise DrainTimeoutError(
                    details={"host": host, "in_flight": count, "timeout": timeout},
                )

            if polls == 1:
                self._logger.debug("Waiting for in-flight requests", host=host, in_flight=count)

            await self._sleep(deadline, cancel)

        waited = time.monotonic() - start
        DRAIN_WAIT_SECONDS.observe(waited)
        if polls:
            self._logger.debug("Drained in-flight requests", polls=polls, waited_ms=round(waited * 1000, 2))
        return waited

    async def _sleep(self, deadline: float | None, cancel: asyncio.Event | None) -> None:
        interval = self._poll_interval
        if deadline is not None:
            interval = max(0.0, min(interval, deadline - time.monotonic()))

        if cancel is None:
            await asyncio.sleep(interval)
            return

        # Wake early on cancellation; the next scan reports it
        try:
            await asyncio.wait_for(cancel.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
