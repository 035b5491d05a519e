"""SQLAlchemy database models."""

from tracelens.models.base import Base
from tracelens.models.span import DependencyLinkRecord, SpanRecord

__all__ = [
    "Base",
    "DependencyLinkRecord",
    "SpanRecord",
]
