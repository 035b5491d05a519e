"""Span store interface consumed by the ingestion and dependency core.

Writes are acknowledged asynchronously: ``write`` returns as soon as the
request is submitted and hands back a future that resolves once the
store has acknowledged it. ``in_flight_count`` exposes how many such
requests are outstanding per connected host.
"""

import asyncio
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from tracelens.schemas.span import DependencyLink, Span


@runtime_checkable
class SpanStore(Protocol):
    """Narrow view of a span store."""

    def write(self, spans: Sequence[Span]) -> "asyncio.Future[None]":
        """Submit spans for writing.

        Span writes are idempotent upserts keyed by span identity.

        Returns:
            Future resolved on acknowledgement, or failed with the write error.
        """
        ...

    def connected_hosts(self) -> set[str]:
        """Hosts the store currently holds connections to."""
        ...

    def in_flight_count(self, host: str) -> int:
        """Requests submitted to ``host`` and not yet acknowledged."""
        ...

    async def read_spans(self, day: int) -> list[Span]:
        """Read every span of every trace with a span in ``day``."""
        ...

    async def write_links(self, day: int, links: Sequence[DependencyLink]) -> None:
        """Replace the stored link set for ``day``."""
        ...

    async def read_links(self, day: int) -> list[DependencyLink]:
        """Read the stored links for ``day`` ordered by (parent, child)."""
        ...

    async def keyspace_exists(self, name: str) -> bool:
        """Check whether ``name`` has been provisioned."""
        ...

    async def close(self) -> None:
        """Release connections."""
        ...


def span_key(span: Span) -> tuple[str, str, bool, str]:
    """Identity used for idempotent span upserts."""
    return (span.trace_id, span.span_id, span.shared, span.kind.value if span.kind else "")


def sort_links(links: Sequence[DependencyLink]) -> list[DependencyLink]:
    """Order links by (parent, child)."""
    return sorted(links, key=lambda link: (link.parent, link.child))
