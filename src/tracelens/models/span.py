"""Span and dependency link tables.

SpanRecord rows are upserted by span identity so re-ingesting a batch is
idempotent. DependencyLinkRecord rows are replaced a whole day at a time.
"""

from typing import Any

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from tracelens.models.base import Base, TimestampMixin
from tracelens.schemas.span import DependencyLink, Span, SpanKind, day_bucket


class SpanRecord(Base):
    """Stored span.

    Identity is (trace_id, span_id, shared, kind); a client span and the
    server span sharing its id are distinct rows.
    """

    __tablename__ = "spans"

    trace_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    span_id: Mapped[str] = mapped_column(String(16), primary_key=True)
    shared: Mapped[bool] = mapped_column(Boolean, primary_key=True, default=False)
    # Empty string for local spans, primary key columns cannot be null
    kind: Mapped[str] = mapped_column(String(8), primary_key=True, default="")

    parent_id: Mapped[str | None] = mapped_column(String(16), nullable=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    day: Mapped[int] = mapped_column(Integer, nullable=False)
    duration: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    local_service_name: Mapped[str | None] = mapped_column(nullable=True)
    remote_service_name: Mapped[str | None] = mapped_column(nullable=True)
    tags: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_spans_day_trace_id", "day", "trace_id"),
    )

    @classmethod
    def values_from_span(cls, span: Span) -> dict[str, Any]:
        """Column values for an insert."""
        return {
            "trace_id": span.trace_id,
            "span_id": span.span_id,
            "shared": span.shared,
            "kind": span.kind.value if span.kind else "",
            "parent_id": span.parent_id,
            "timestamp": span.timestamp,
            "day": day_bucket(span.timestamp),
            "duration": span.duration,
            "local_service_name": span.local_service_name,
            "remote_service_name": span.remote_service_name,
            "tags": dict(span.tags),
        }

    def to_span(self) -> Span:
        return Span(
            trace_id=self.trace_id,
            span_id=self.span_id,
            parent_id=self.parent_id,
            timestamp=self.timestamp,
            duration=self.duration,
            kind=SpanKind(self.kind) if self.kind else None,
            local_service_name=self.local_service_name,
            remote_service_name=self.remote_service_name,
            shared=self.shared,
            tags=self.tags or {},
        )


class DependencyLinkRecord(Base, TimestampMixin):
    """Dependency link for one day."""

    __tablename__ = "dependency_links"

    day: Mapped[int] = mapped_column(Integer, primary_key=True)
    parent: Mapped[str] = mapped_column(primary_key=True)
    child: Mapped[str] = mapped_column(primary_key=True)

    call_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("error_count <= call_count", name="ck_dependency_links_error_count"),
    )

    def to_link(self) -> DependencyLink:
        return DependencyLink(
            parent=self.parent,
            child=self.child,
            call_count=self.call_count,
            error_count=self.error_count,
        )
