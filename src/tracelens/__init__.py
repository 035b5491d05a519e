"""TraceLens - Service Dependency Graphs from Distributed Traces.

Ingests tracing spans with backpressure control and rebuilds per-day
service dependency links with a re-runnable batch job.
"""

__version__ = "0.1.0"
