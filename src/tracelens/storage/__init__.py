"""Span stores."""

from tracelens.storage.base import SpanStore
from tracelens.storage.memory import InMemorySpanStore

__all__ = [
    "InMemorySpanStore",
    "SpanStore",
]
