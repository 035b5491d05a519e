"""Pytest configuration and fixtures for TraceLens tests."""

from collections.abc import Callable

import pytest

from tracelens.common.config import DependencySettings, IngestionSettings, Settings
from tracelens.schemas.job import JobConfig
from tracelens.schemas.span import Span
from tracelens.storage.memory import InMemorySpanStore

from tests.factories import DAY, HOSTS, KEYSPACE, make_span, three_tier


@pytest.fixture
def ingestion_settings() -> IngestionSettings:
    """Ingestion settings with a fast drain poll."""
    return IngestionSettings(chunk_size=100, drain_poll_interval_ms=1)


@pytest.fixture
def dependency_settings() -> DependencySettings:
    return DependencySettings()


@pytest.fixture
def settings(
    ingestion_settings: IngestionSettings,
    dependency_settings: DependencySettings,
) -> Settings:
    """Application settings for tests."""
    return Settings(
        environment="development",
        ingestion=ingestion_settings,
        dependencies=dependency_settings,
    )


@pytest.fixture
def store() -> InMemorySpanStore:
    """In-memory store with a small write latency."""
    return InMemorySpanStore(keyspace=KEYSPACE, hosts=HOSTS, write_latency=0.002)


@pytest.fixture
def job_config() -> JobConfig:
    return JobConfig(keyspace=KEYSPACE, contact_points=HOSTS, day=DAY)


# =============================================================================
# Sample Data Fixtures
# =============================================================================


@pytest.fixture
def span_factory() -> Callable[..., Span]:
    """Factory for spans with test defaults."""
    return make_span


@pytest.fixture
def three_tier_trace() -> list[Span]:
    """frontend -> backend -> db, each call captured on both sides."""
    return three_tier()
