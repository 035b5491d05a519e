"""Unit tests for the drain barrier."""

import asyncio

import pytest

from tracelens.common.config import IngestionSettings
from tracelens.common.exceptions import DrainCancelledError, DrainTimeoutError
from tracelens.ingestion.backpressure import BackpressureMonitor
from tracelens.storage.memory import InMemorySpanStore

from tests.factories import many_spans


class ScriptedStore:
    """Store stub that replays in-flight counts per host.

    Each host returns the next scripted count on every query and keeps
    repeating its last count once the script runs out.
    """

    def __init__(self, counts: dict[str, list[int]]) -> None:
        self._counts = {host: list(values) for host, values in counts.items()}
        self._hosts = list(counts)
        self.calls: list[str] = []

    def connected_hosts(self) -> list[str]:
        return list(self._hosts)

    def in_flight_count(self, host: str) -> int:
        self.calls.append(host)
        values = self._counts[host]
        return values.pop(0) if len(values) > 1 else values[0]


@pytest.mark.unit
class TestBackpressureMonitor:
    """Test cases for BackpressureMonitor.drain."""

    @pytest.mark.asyncio
    async def test_idle_hosts_return_immediately(self):
        """Test drain does not sleep when nothing is in flight."""
        store = ScriptedStore({"a": [0], "b": [0]})
        monitor = BackpressureMonitor(store, poll_interval=0.001)

        waited = await monitor.drain()

        assert store.calls == ["a", "b"]
        assert waited < 0.5

    @pytest.mark.asyncio
    async def test_rescans_from_first_host_after_busy(self):
        """Test a busy host restarts the scan from the beginning."""
        store = ScriptedStore({"a": [0, 1, 0], "b": [1, 0, 0]})
        monitor = BackpressureMonitor(store, poll_interval=0.001)

        await monitor.drain()

        # Scan 1 stops at busy b, scan 2 stops at busy a, scan 3 is clean
        assert store.calls == ["a", "b", "a", "a", "b"]

    @pytest.mark.asyncio
    async def test_no_hosts_is_drained(self):
        """Test drain with no connected hosts."""
        store = ScriptedStore({})
        monitor = BackpressureMonitor(store, poll_interval=0.001)

        await monitor.drain()

        assert store.calls == []

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test drain gives up on a host that never goes idle."""
        store = ScriptedStore({"a": [3]})
        monitor = BackpressureMonitor(store, poll_interval=0.001)

        with pytest.raises(DrainTimeoutError) as exc_info:
            await monitor.drain(timeout=0.02)

        assert exc_info.value.details["host"] == "a"
        assert exc_info.value.details["in_flight"] == 3

    @pytest.mark.asyncio
    async def test_default_timeout_from_settings(self):
        """Test the monitor applies the configured timeout."""
        store = ScriptedStore({"a": [1]})
        settings = IngestionSettings(drain_poll_interval_ms=1, drain_timeout_seconds=0.02)
        monitor = BackpressureMonitor.from_settings(store, settings)

        with pytest.raises(DrainTimeoutError):
            await monitor.drain()

    @pytest.mark.asyncio
    async def test_cancel(self):
        """Test setting the cancel event aborts the wait."""
        store = ScriptedStore({"a": [1]})
        monitor = BackpressureMonitor(store, poll_interval=10.0)
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, cancel.set)

        with pytest.raises(DrainCancelledError):
            await asyncio.wait_for(monitor.drain(cancel=cancel), timeout=5)

    @pytest.mark.asyncio
    async def test_cancel_ignored_once_idle(self):
        """Test a set cancel event does not fail a drain with nothing in flight."""
        store = ScriptedStore({"a": [0]})
        monitor = BackpressureMonitor(store, poll_interval=0.001)
        cancel = asyncio.Event()
        cancel.set()

        await monitor.drain(cancel=cancel)

    def test_invalid_poll_interval(self):
        """Test poll interval must be positive."""
        with pytest.raises(ValueError):
            BackpressureMonitor(ScriptedStore({}), poll_interval=0)

    @pytest.mark.asyncio
    async def test_waits_for_real_writes(self):
        """Test drain returns only after store writes are acknowledged."""
        store = InMemorySpanStore(hosts=("h1", "h2"), write_latency=0.01)
        monitor = BackpressureMonitor(store, poll_interval=0.001)

        acks = [store.write(many_spans(5)), store.write(many_spans(5))]
        assert store.in_flight_count("h1") == 1
        assert store.in_flight_count("h2") == 1

        await monitor.drain()

        assert all(ack.done() for ack in acks)
        assert store.in_flight_count("h1") == 0
        assert store.in_flight_count("h2") == 0
