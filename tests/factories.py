"""Span builders shared by the test modules."""

from typing import Any

from tracelens.schemas.span import MICROS_PER_DAY, Span, SpanKind

# 2023-11-14 (UTC)
DAY = 19675
DAY_START = DAY * MICROS_PER_DAY
KEYSPACE = "zipkin"
HOSTS = ("10.0.0.1:9042", "10.0.0.2:9042")


def make_span(
    span_id: str,
    trace_id: str = "a",
    parent_id: str | None = None,
    kind: SpanKind | None = None,
    local: str | None = None,
    remote: str | None = None,
    timestamp: int = DAY_START + 1_000_000,
    error: bool = False,
    shared: bool = False,
    **extra: Any,
) -> Span:
    """Build a span with test defaults."""
    tags = {"error": "true"} if error else {}
    return Span(
        trace_id=trace_id,
        span_id=span_id,
        parent_id=parent_id,
        kind=kind,
        local_service_name=local,
        remote_service_name=remote,
        timestamp=timestamp,
        duration=extra.pop("duration", 1000),
        shared=shared,
        tags=tags,
        **extra,
    )


def three_tier(trace_id: str = "a", timestamp: int = DAY_START + 1_000_000) -> list[Span]:
    """frontend -> backend -> db, each call captured on both sides."""
    return [
        make_span("1", trace_id, kind=SpanKind.SERVER, local="frontend", timestamp=timestamp),
        make_span("2", trace_id, "1", SpanKind.CLIENT, "frontend", "backend", timestamp=timestamp + 50),
        make_span("3", trace_id, "2", SpanKind.SERVER, "backend", timestamp=timestamp + 100),
        make_span("4", trace_id, "3", SpanKind.CLIENT, "backend", "db", timestamp=timestamp + 200),
    ]


def many_spans(count: int, trace_count: int = 10) -> list[Span]:
    """Client spans spread over several traces."""
    return [
        make_span(
            format(i + 1, "x"),
            trace_id=format(i % trace_count + 1, "x"),
            kind=SpanKind.CLIENT,
            local="web",
            remote="api",
            timestamp=DAY_START + i,
        )
        for i in range(count)
    ]
