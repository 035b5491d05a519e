"""End-to-end dependency processing.

Ingests a span batch, works out which days it touches, and runs one
dependency job per day so each day's links are rebuilt from the store.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import structlog

from tracelens.common.config import Settings, get_settings
from tracelens.common.logging import get_logger
from tracelens.dependencies.aggregator import LinkAggregator
from tracelens.dependencies.job import DependencyJob
from tracelens.ingestion.backpressure import BackpressureMonitor
from tracelens.ingestion.ingestor import SpanIngestor
from tracelens.schemas.job import JobConfig
from tracelens.schemas.span import DependencyLink, Span
from tracelens.storage.base import SpanStore


@dataclass
class ProcessingResult:
    """Outcome of a processing run."""

    spans: int = 0
    links_by_day: dict[int, list[DependencyLink]] = field(default_factory=dict)

    @property
    def days(self) -> list[int]:
        return sorted(self.links_by_day)


class DependencyProcessor:
    """Runs ingestion followed by one dependency job per touched day.

    Jobs run one after another so backend load stays bounded.
    """

    def __init__(
        self,
        store: SpanStore,
        keyspace: str,
        contact_points: Sequence[str],
        settings: Settings | None = None,
        job_factory: Callable[[JobConfig], DependencyJob] | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        """Initialize processor.

        Args:
            store: Store spans are ingested into.
            keyspace: Keyspace the jobs run against.
            contact_points: Contact points recorded in each job config.
            settings: Application settings. Uses global settings if not provided.
            job_factory: Builds a job from a config. Defaults to jobs that
                share ``store``.
            logger: Logger to use instead of the module logger.
        """
        if settings is None:
            settings = get_settings()

        self._store = store
        self._keyspace = keyspace
        self._contact_points = tuple(contact_points)
        self._settings = settings
        self._logger = logger or get_logger(__name__)
        self._monitor = BackpressureMonitor.from_settings(store, settings.ingestion, logger=self._logger)
        self._ingestor = SpanIngestor(store, self._monitor, settings.ingestion, logger=self._logger)
        self._aggregator = LinkAggregator(settings.dependencies, logger=self._logger)
        self._job_factory = job_factory or self._default_job

    def _default_job(self, config: JobConfig) -> DependencyJob:
        return DependencyJob(
            config,
            store=self._store,
            aggregator=self._aggregator,
            logger=self._logger,
        )

    async def process(self, spans: Sequence[Span]) -> ProcessingResult:
        """Ingest spans and rebuild the links of every day they touch.

        Args:
            spans: Spans to ingest.

        Returns:
            Links written per day.
        """
        ingested = await self._ingestor.ingest(spans)

        # In-memory pass only decides which days need a job
        days = sorted(self._aggregator.aggregate(spans))
        self._logger.info("Running dependency jobs", days=days)

        result = ProcessingResult(spans=ingested.spans)
        for day in days:
            config = JobConfig(keyspace=self._keyspace, contact_points=self._contact_points, day=day)
            result.links_by_day[day] = await self._job_factory(config).run()

        await self._monitor.drain()
        return result
