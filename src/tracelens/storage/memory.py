"""In-process span store.

Behaves like a remote store from the core's point of view: writes are
acknowledged asynchronously after a configurable latency, are spread
round-robin over a set of hosts, and are counted as in flight until
acknowledged.
"""

import asyncio
import itertools
from collections import defaultdict
from collections.abc import Callable, Sequence

from tracelens.common.exceptions import StorageError
from tracelens.schemas.span import DependencyLink, Span
from tracelens.storage.base import span_key, sort_links


class InMemorySpanStore:
    """Span store kept in process memory."""

    def __init__(
        self,
        keyspace: str = "zipkin",
        hosts: Sequence[str] = ("127.0.0.1:9042",),
        write_latency: float = 0.0,
        write_hook: Callable[[Sequence[Span]], None] | None = None,
    ) -> None:
        """Initialize store.

        Args:
            keyspace: Name reported by ``keyspace_exists``.
            hosts: Hosts writes are spread over.
            write_latency: Seconds before a write is acknowledged.
            write_hook: Called with each chunk before it is applied; an
                exception raised here fails the write.
        """
        if not hosts:
            raise StorageError("at least one host is required")

        self._keyspaces = {keyspace}
        self._hosts = list(hosts)
        self._host_cycle = itertools.cycle(self._hosts)
        self._write_latency = write_latency
        self._write_hook = write_hook

        self._spans: dict[tuple[str, str, bool, str], Span] = {}
        self._links: dict[int, list[DependencyLink]] = {}
        self._in_flight: dict[str, int] = defaultdict(int)
        self._pending: set[asyncio.Task[None]] = set()
        self.write_count = 0
        self.link_write_count = 0

    def write(self, spans: Sequence[Span]) -> "asyncio.Future[None]":
        host = next(self._host_cycle)
        batch = list(spans)
        self._in_flight[host] += 1
        self.write_count += 1

        task = asyncio.get_running_loop().create_task(self._apply(batch))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        task.add_done_callback(lambda _: self._acknowledge(host))
        return task

    def _acknowledge(self, host: str) -> None:
        self._in_flight[host] -= 1

    async def _apply(self, spans: list[Span]) -> None:
        if self._write_latency:
            await asyncio.sleep(self._write_latency)
        if self._write_hook is not None:
            self._write_hook(spans)
        for span in spans:
            self._spans[span_key(span)] = span

    def connected_hosts(self) -> set[str]:
        return set(self._hosts)

    def in_flight_count(self, host: str) -> int:
        return self._in_flight.get(host, 0)

    async def read_spans(self, day: int) -> list[Span]:
        trace_ids = {s.trace_id for s in self._spans.values() if s.day == day}
        return [s for s in self._spans.values() if s.trace_id in trace_ids]

    async def write_links(self, day: int, links: Sequence[DependencyLink]) -> None:
        self._links[day] = sort_links(links)
        self.link_write_count += 1

    async def read_links(self, day: int) -> list[DependencyLink]:
        return list(self._links.get(day, []))

    async def keyspace_exists(self, name: str) -> bool:
        return name in self._keyspaces

    async def close(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def all_spans(self) -> list[Span]:
        """Every stored span, for inspection."""
        return list(self._spans.values())
