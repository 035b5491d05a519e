"""Custom exceptions for TraceLens.

Provides a hierarchy of exceptions with error codes and structured
details, distinguishing ingestion, read and write failures.
"""

from typing import Any


class TraceLensError(Exception):
    """Base exception for all TraceLens errors."""

    error_code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize exception with optional details.

        Args:
            message: Human-readable error message.
            details: Additional error details for debugging.
            cause: Original exception that caused this error.
        """
        self.message = message or self.message
        self.details = details or {}
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for structured output."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        if self.cause is not None:
            result["cause"] = repr(self.cause)
        return result


class ConfigurationError(TraceLensError):
    """Invalid configuration."""

    error_code = "CONFIGURATION_ERROR"
    message = "Invalid configuration"


class StorageError(TraceLensError):
    """Span store operation failed."""

    error_code = "STORAGE_ERROR"
    message = "Span store operation failed"


# Ingestion errors
class SpanIngestionError(TraceLensError):
    """A chunk write failed; remaining chunks were not submitted."""

    error_code = "INGESTION_ERROR"
    message = "Span ingestion failed"


class DrainTimeoutError(TraceLensError):
    """In-flight writes did not complete before the drain timeout."""

    error_code = "DRAIN_TIMEOUT"
    message = "Timed out waiting for in-flight requests to complete"


class DrainCancelledError(TraceLensError):
    """Drain was cancelled before in-flight writes completed."""

    error_code = "DRAIN_CANCELLED"
    message = "Drain cancelled before in-flight requests completed"


# Dependency job errors
class DependencyJobError(TraceLensError):
    """Dependency job failed.

    ``phase`` names the stage that failed: ``check``, ``read`` or ``write``.
    """

    error_code = "DEPENDENCY_JOB_ERROR"
    message = "Dependency job failed"
    phase: str = "run"

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["phase"] = self.phase
        return result


class KeyspaceNotFoundError(DependencyJobError):
    """Configured keyspace does not exist."""

    error_code = "KEYSPACE_NOT_FOUND"
    message = "Keyspace does not exist"
    phase = "check"


class SpanReadError(DependencyJobError):
    """Reading spans for the job's day failed."""

    error_code = "SPAN_READ_ERROR"
    message = "Failed to read spans"
    phase = "read"


class LinkWriteError(DependencyJobError):
    """Writing the day's dependency links failed."""

    error_code = "LINK_WRITE_ERROR"
    message = "Failed to write dependency links"
    phase = "write"


class JobStateError(TraceLensError):
    """Job was run outside of its pending state."""

    error_code = "JOB_STATE_ERROR"
    message = "Dependency job has already run"
