"""Dependency link aggregation and the per-day dependency job."""

from tracelens.dependencies.aggregator import LinkAggregator, merge_links
from tracelens.dependencies.job import DependencyJob, JobState
from tracelens.dependencies.processor import DependencyProcessor, ProcessingResult
from tracelens.dependencies.query import get_dependencies

__all__ = [
    "DependencyJob",
    "DependencyProcessor",
    "JobState",
    "LinkAggregator",
    "ProcessingResult",
    "get_dependencies",
    "merge_links",
]
