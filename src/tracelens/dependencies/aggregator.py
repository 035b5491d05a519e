"""Dependency link aggregation.

Reconstructs caller to callee edges from the spans of one or more traces
and groups the resulting links by UTC day. Purely in-memory; the same
spans always produce the same links regardless of input order.
"""

from collections import defaultdict
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

import structlog

from tracelens.common.config import DependencySettings, get_settings
from tracelens.common.logging import get_logger
from tracelens.common.metrics import UNKNOWN_SERVICE_EDGES
from tracelens.schemas.span import DependencyLink, Span, day_bucket
from tracelens.storage.base import span_key

UNKNOWN_SERVICE = "unknown"


def _span_order(span: Span) -> tuple:
    return (
        span.timestamp,
        span.span_id,
        span.shared,
        span.kind.value if span.kind else "",
        span.parent_id or "",
        span.model_dump_json(),
    )


def group_by_trace(spans: Iterable[Span]) -> dict[str, list[Span]]:
    """Group spans by trace id.

    Spans with the same identity are collapsed to one, as the store does
    on upsert, and each trace is put in a deterministic order.

    Args:
        spans: Spans from any number of traces.

    Returns:
        Mapping of trace id to its ordered spans.
    """
    unique: dict[tuple, Span] = {}
    for span in spans:
        key = span_key(span)
        existing = unique.get(key)
        # Keep the same copy whatever the input order
        if existing is None or _span_order(span) > _span_order(existing):
            unique[key] = span

    traces: dict[str, list[Span]] = defaultdict(list)
    for span in unique.values():
        traces[span.trace_id].append(span)

    return {trace_id: sorted(trace, key=_span_order) for trace_id, trace in traces.items()}


@dataclass(frozen=True)
class Edge:
    """Directed call between two services, before counting.

    Service names are None when they could not be resolved.
    """

    timestamp: int
    parent: str | None
    child: str | None
    error: bool


class TraceTree:
    """Parent/child relation between the spans of one trace.

    A span whose parent id matches no span in the trace is a root. A
    shared server span is the child of the client span with its id, and
    spans naming that id as parent hang off the server side.
    """

    def __init__(self, spans: Sequence[Span]) -> None:
        self._spans = list(spans)

        by_id: dict[str, list[int]] = defaultdict(list)
        for index, span in enumerate(self._spans):
            by_id[span.span_id].append(index)

        self._parents = [self._resolve_parent(i, by_id) for i in range(len(self._spans))]
        self._children: list[list[int]] = [[] for _ in self._spans]
        for index, parent in enumerate(self._parents):
            if parent is not None:
                self._children[parent].append(index)

    def _resolve_parent(self, index: int, by_id: dict[str, list[int]]) -> int | None:
        span = self._spans[index]

        if span.shared:
            for candidate in by_id.get(span.span_id, []):
                if candidate != index and not self._spans[candidate].shared:
                    return candidate

        if span.parent_id is None or span.parent_id == span.span_id:
            return None

        candidates = [c for c in by_id.get(span.parent_id, []) if c != index]
        if not candidates:
            return None
        shared = [c for c in candidates if self._spans[c].shared]
        return (shared or candidates)[0]

    def parent(self, index: int) -> int | None:
        return self._parents[index]

    def children(self, index: int) -> list[int]:
        return self._children[index]

    def ancestor_service(self, index: int) -> str | None:
        """Local service of the nearest ancestor that has one."""
        seen = {index}
        current = self._parents[index]
        while current is not None and current not in seen:
            name = self._spans[current].local_service_name
            if name is not None:
                return name
            seen.add(current)
            current = self._parents[current]
        return None

    def local_service(self, index: int) -> str | None:
        """Span's own local service, else its nearest ancestor's."""
        return self._spans[index].local_service_name or self.ancestor_service(index)

    def _has_callee_child(self, index: int) -> bool:
        for child in self._children[index]:
            kind = self._spans[child].kind
            if kind is not None and kind.is_callee:
                return True
        return False

    def edges(self) -> Iterator[Edge]:
        """Derive one edge per remote call in the trace.

        When both sides of a call were captured, the callee span produces
        the edge and the caller span is skipped, so each call counts once.
        Local spans only contribute ancestry.
        """
        for index, span in enumerate(self._spans):
            if span.kind is None:
                continue

            if span.kind.is_caller:
                if self._has_callee_child(index):
                    continue
                yield Edge(
                    timestamp=span.timestamp,
                    parent=self.local_service(index),
                    child=span.remote_service_name,
                    error=span.error,
                )
                continue

            parent = self._parents[index]
            caller = self._spans[parent] if parent is not None else None

            if caller is not None and caller.kind is not None and caller.kind.is_caller:
                yield Edge(
                    timestamp=caller.timestamp,
                    parent=self.local_service(parent),
                    child=span.local_service_name or caller.remote_service_name,
                    error=caller.error or span.error,
                )
                continue

            remote = span.remote_service_name
            if remote is None and parent is None:
                # Entry point into the system, nobody called it
                continue
            yield Edge(
                timestamp=span.timestamp,
                parent=remote or self.ancestor_service(index),
                child=span.local_service_name,
                error=span.error,
            )


@dataclass(frozen=True)
class LinkKey:
    """Key for aggregating edges."""

    day: int
    parent: str
    child: str


@dataclass
class LinkBucket:
    """Bucket for accumulating call counts."""

    call_count: int = 0
    error_count: int = 0

    def add(self, error: bool) -> None:
        """Count one call."""
        self.call_count += 1
        if error:
            self.error_count += 1


class LinkAggregator:
    """Aggregates spans into per-day dependency links.

    Edges with an unresolvable service name are kept under a placeholder
    service so missing instrumentation shows up in the graph, even when
    both sides are unresolved. Self-edges between resolved names are
    discarded.
    """

    def __init__(
        self,
        settings: DependencySettings | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        """Initialize aggregator.

        Args:
            settings: Dependency settings. Uses global settings if not provided.
            logger: Logger to use instead of the module logger.
        """
        if settings is None:
            settings = get_settings().dependencies

        self._unknown = settings.unknown_service_name
        self._logger = logger or get_logger(__name__)

    def aggregate(self, spans: Iterable[Span]) -> dict[int, list[DependencyLink]]:
        """Aggregate spans into links grouped by day.

        Args:
            spans: Spans from any number of traces and days.

        Returns:
            Mapping of epoch day to links ordered by (parent, child).
        """
        buckets: dict[LinkKey, LinkBucket] = {}
        unknown_edges = 0

        for trace_id, trace in group_by_trace(spans).items():
            for edge in TraceTree(trace).edges():
                # Only two resolved, equal names make a self-edge
                if edge.parent is not None and edge.parent == edge.child:
                    continue

                if edge.parent is None or edge.child is None:
                    unknown_edges += 1
                    self._logger.debug(
                        "Unresolved service name in trace",
                        trace_id=trace_id,
                        parent=edge.parent,
                        child=edge.child,
                    )

                key = LinkKey(
                    day=day_bucket(edge.timestamp),
                    parent=edge.parent or self._unknown,
                    child=edge.child or self._unknown,
                )
                if key not in buckets:
                    buckets[key] = LinkBucket()
                buckets[key].add(edge.error)

        if unknown_edges:
            UNKNOWN_SERVICE_EDGES.inc(unknown_edges)
            self._logger.warning(
                "Edges with unresolved service names",
                edges=unknown_edges,
                placeholder=self._unknown,
            )

        links: dict[int, list[DependencyLink]] = defaultdict(list)
        for key in sorted(buckets, key=lambda k: (k.day, k.parent, k.child)):
            bucket = buckets[key]
            links[key.day].append(DependencyLink(
                parent=key.parent,
                child=key.child,
                call_count=bucket.call_count,
                error_count=bucket.error_count,
            ))

        return dict(links)

    def aggregate_day(self, spans: Iterable[Span], day: int) -> list[DependencyLink]:
        """Aggregate spans, keeping only the links of one day."""
        return self.aggregate(spans).get(day, [])


def merge_links(links: Iterable[DependencyLink]) -> list[DependencyLink]:
    """Sum links sharing (parent, child).

    Args:
        links: Links, possibly from several days.

    Returns:
        Merged links ordered by (parent, child).
    """
    totals: dict[tuple[str, str], LinkBucket] = {}
    for link in links:
        bucket = totals.setdefault((link.parent, link.child), LinkBucket())
        bucket.call_count += link.call_count
        bucket.error_count += link.error_count

    return [
        DependencyLink(
            parent=parent,
            child=child,
            call_count=bucket.call_count,
            error_count=bucket.error_count,
        )
        for (parent, child), bucket in sorted(totals.items())
    ]
