"""Dependency job.

Rebuilds one day's dependency links from stored spans. The stored link
set for the day is replaced, never merged, so running the job again
after a partial or duplicate ingestion converges on the same result.
"""

import time
from enum import Enum

import structlog

from tracelens.common.config import DependencySettings, StorageSettings, get_settings
from tracelens.common.exceptions import (
    DependencyJobError,
    JobStateError,
    KeyspaceNotFoundError,
    LinkWriteError,
    SpanReadError,
)
from tracelens.common.logging import get_logger
from tracelens.common.metrics import (
    DEPENDENCY_JOB_DURATION,
    DEPENDENCY_JOB_RUNS,
    DEPENDENCY_LINKS_WRITTEN,
)
from tracelens.dependencies.aggregator import LinkAggregator
from tracelens.schemas.job import JobConfig
from tracelens.schemas.span import DependencyLink, day_to_date
from tracelens.storage.base import SpanStore


class JobState(str, Enum):
    """Lifecycle of a dependency job."""

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class DependencyJob:
    """Read, aggregate and overwrite the links of one day.

    A job runs once. To run a day again construct a new job from the
    same config.
    """

    def __init__(
        self,
        config: JobConfig,
        store: SpanStore | None = None,
        aggregator: LinkAggregator | None = None,
        storage_settings: StorageSettings | None = None,
        dependency_settings: DependencySettings | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        """Initialize job.

        Args:
            config: Keyspace, contact points and day to process.
            store: Store to use. When omitted a SQL store is built from
                ``config`` and closed after the run.
            aggregator: Link aggregator. Built from settings if not provided.
            storage_settings: Credentials for the store built from ``config``.
            dependency_settings: Settings for the default aggregator.
            logger: Logger to use instead of the module logger.
        """
        self._config = config
        self._store = store
        self._owns_store = store is None
        self._storage_settings = storage_settings
        self._logger = (logger or get_logger(__name__)).bind(
            keyspace=config.keyspace,
            day=config.day,
            date=day_to_date(config.day).isoformat(),
        )
        self._aggregator = aggregator or LinkAggregator(
            dependency_settings or get_settings().dependencies,
            logger=self._logger,
        )
        self._state = JobState.PENDING
        self._error: DependencyJobError | None = None
        self._links: list[DependencyLink] = []

    @property
    def config(self) -> JobConfig:
        return self._config

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def error(self) -> DependencyJobError | None:
        """Failure of a FAILED job."""
        return self._error

    @property
    def links(self) -> list[DependencyLink]:
        """Links written by a DONE job."""
        return list(self._links)

    def _open_store(self) -> SpanStore:
        if self._store is None:
            from tracelens.storage.sql import SqlSpanStore

            self._store = SqlSpanStore.from_job_config(self._config, self._storage_settings)
        return self._store

    async def run(self) -> list[DependencyLink]:
        """Run the job.

        Returns:
            Links written for the day.

        Raises:
            JobStateError: The job has already run.
            KeyspaceNotFoundError: The keyspace does not exist.
            SpanReadError: Reading the day's spans failed.
            LinkWriteError: Writing the day's links failed.
        """
        if self._state is not JobState.PENDING:
            raise JobStateError(details={"state": self._state.value, "day": self._config.day})

        self._state = JobState.RUNNING
        start_time = time.perf_counter()
        self._logger.info("Dependency job started")

        try:
            store = self._open_store()
            links = await self._process(store)
        except DependencyJobError as e:
            self._fail(e)
            raise
        except Exception as e:
            error = DependencyJobError(str(e) or "Dependency job failed", cause=e)
            self._fail(error)
            raise error from e
        finally:
            if self._owns_store and self._store is not None:
                await self._store.close()

        duration = time.perf_counter() - start_time
        DEPENDENCY_JOB_RUNS.labels(status="done").inc()
        DEPENDENCY_JOB_DURATION.observe(duration)
        DEPENDENCY_LINKS_WRITTEN.inc(len(links))

        self._links = links
        self._state = JobState.DONE
        self._logger.info(
            "Dependency job done",
            links=len(links),
            duration_ms=round(duration * 1000, 2),
        )
        return list(links)

    async def _process(self, store: SpanStore) -> list[DependencyLink]:
        config = self._config

        try:
            exists = await store.keyspace_exists(config.keyspace)
        except Exception as e:
            raise SpanReadError(
                f"Could not check keyspace {config.keyspace!r}",
                details={"keyspace": config.keyspace},
                cause=e,
            ) from e
        if not exists:
            raise KeyspaceNotFoundError(
                f"Keyspace {config.keyspace!r} does not exist",
                details={"keyspace": config.keyspace},
            )

        try:
            spans = await store.read_spans(config.day)
        except Exception as e:
            raise SpanReadError(
                f"Reading spans for day {config.day} failed",
                details={"day": config.day},
                cause=e,
            ) from e

        self._logger.debug("Spans read", spans=len(spans))
        links = self._aggregator.aggregate_day(spans, config.day)

        try:
            await store.write_links(config.day, links)
        except Exception as e:
            raise LinkWriteError(
                f"Writing links for day {config.day} failed",
                details={"day": config.day, "links": len(links)},
                cause=e,
            ) from e

        return links

    def _fail(self, error: DependencyJobError) -> None:
        self._state = JobState.FAILED
        self._error = error
        DEPENDENCY_JOB_RUNS.labels(status="failed").inc()
        self._logger.error(
            "Dependency job failed",
            phase=error.phase,
            error=error.message,
            cause=str(error.cause) if error.cause else None,
        )
