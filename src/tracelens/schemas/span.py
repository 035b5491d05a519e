"""Span and dependency link schemas.

Spans are produced upstream and consumed read-only; both types are frozen
so they can be shared freely between the ingestor, the aggregator and
the stores.
"""

from datetime import date, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MICROS_PER_DAY = 86_400_000_000
MILLIS_PER_DAY = 86_400_000
EPOCH = date(1970, 1, 1)

_HEX_DIGITS = frozenset("0123456789abcdef")


def day_bucket(timestamp: int) -> int:
    """Get the UTC epoch day for a microsecond timestamp.

    Args:
        timestamp: Microseconds since the epoch.

    Returns:
        floor(timestamp / 86_400_000_000).
    """
    return timestamp // MICROS_PER_DAY


def day_to_date(day: int) -> date:
    """Convert an epoch day to a calendar date (UTC)."""
    return EPOCH + timedelta(days=day)


def date_to_day(value: date) -> int:
    """Convert a calendar date (UTC) to an epoch day."""
    return (value - EPOCH).days


def _normalize_hex_id(value: str, width: int) -> str:
    value = value.strip().lower()
    if not value or any(c not in _HEX_DIGITS for c in value):
        raise ValueError(f"not a hex identifier: {value!r}")
    if len(value) > width:
        raise ValueError(f"identifier longer than {width} characters: {value!r}")
    return value.rjust(width, "0")


class SpanKind(str, Enum):
    """Remote side of a span. Local spans have no kind."""

    CLIENT = "CLIENT"
    SERVER = "SERVER"
    PRODUCER = "PRODUCER"
    CONSUMER = "CONSUMER"

    @property
    def is_caller(self) -> bool:
        return self in (SpanKind.CLIENT, SpanKind.PRODUCER)

    @property
    def is_callee(self) -> bool:
        return self in (SpanKind.SERVER, SpanKind.CONSUMER)


class Span(BaseModel):
    """One timed operation within a distributed trace."""

    model_config = ConfigDict(frozen=True)

    trace_id: str = Field(..., description="16 or 32 lower-hex characters")
    span_id: str = Field(..., description="16 lower-hex characters")
    parent_id: str | None = None
    timestamp: int = Field(..., ge=0, description="Microseconds since the epoch")
    duration: int | None = Field(None, ge=0, description="Microseconds")
    kind: SpanKind | None = None
    local_service_name: str | None = None
    remote_service_name: str | None = None
    shared: bool = False
    tags: dict[str, str] = Field(default_factory=dict)

    @field_validator("trace_id")
    @classmethod
    def normalize_trace_id(cls, v: str) -> str:
        """Lower-case and left-pad to 16 or 32 characters."""
        return _normalize_hex_id(v, 16 if len(v.strip()) <= 16 else 32)

    @field_validator("span_id")
    @classmethod
    def normalize_span_id(cls, v: str) -> str:
        """Lower-case and left-pad to 16 characters."""
        return _normalize_hex_id(v, 16)

    @field_validator("parent_id")
    @classmethod
    def normalize_parent_id(cls, v: str | None) -> str | None:
        """Lower-case and left-pad; an all-zero parent means no parent."""
        if v is None or not v.strip():
            return None
        v = _normalize_hex_id(v, 16)
        return None if v == "0" * 16 else v

    @field_validator("local_service_name", "remote_service_name")
    @classmethod
    def normalize_service_name(cls, v: str | None) -> str | None:
        """Service names are case-insensitive; blank means absent."""
        if v is None:
            return None
        v = v.strip().lower()
        return v or None

    @property
    def error(self) -> bool:
        """Whether the span carries an error indicator."""
        return "error" in self.tags

    @property
    def day(self) -> int:
        """UTC epoch day the span belongs to."""
        return day_bucket(self.timestamp)


class DependencyLink(BaseModel):
    """Aggregated caller to callee edge for one day."""

    model_config = ConfigDict(frozen=True)

    parent: str = Field(..., min_length=1)
    child: str = Field(..., min_length=1)
    call_count: int = Field(..., ge=0)
    error_count: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def check_counts(self) -> "DependencyLink":
        if self.error_count > self.call_count:
            raise ValueError("error_count cannot exceed call_count")
        return self
