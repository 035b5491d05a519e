"""Prometheus metrics for TraceLens components.

Provides pre-defined metrics for monitoring span ingestion, the drain
barrier and dependency job runs.
"""

from prometheus_client import Counter, Histogram, Info

# Application info
APP_INFO = Info(
    "tracelens",
    "TraceLens application information",
)

# Span ingestion metrics
SPANS_INGESTED = Counter(
    "tracelens_spans_ingested_total",
    "Total number of spans acknowledged by the span store",
)

INGESTION_CHUNKS = Counter(
    "tracelens_ingestion_chunks_total",
    "Total number of span chunks submitted",
    ["status"],
)

INGESTION_LATENCY = Histogram(
    "tracelens_ingestion_latency_seconds",
    "Time to ingest a batch of spans, including drains",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

# Backpressure metrics
DRAIN_WAIT_SECONDS = Histogram(
    "tracelens_drain_wait_seconds",
    "Time spent waiting for in-flight requests to reach zero",
    buckets=[0.0, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

DRAIN_POLLS = Counter(
    "tracelens_drain_polls_total",
    "Total number of drain scans that found a busy host",
)

# Dependency job metrics
DEPENDENCY_JOB_RUNS = Counter(
    "tracelens_dependency_job_runs_total",
    "Total number of dependency job runs",
    ["status"],
)

DEPENDENCY_JOB_DURATION = Histogram(
    "tracelens_dependency_job_duration_seconds",
    "Dependency job run time",
    buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0],
)

DEPENDENCY_LINKS_WRITTEN = Counter(
    "tracelens_dependency_links_written_total",
    "Total number of dependency links written",
)

UNKNOWN_SERVICE_EDGES = Counter(
    "tracelens_unknown_service_edges_total",
    "Edges where a service name could not be resolved",
)


def set_app_info(version: str, environment: str) -> None:
    """Set application info metric.

    Args:
        version: Application version.
        environment: Deployment environment.
    """
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })
