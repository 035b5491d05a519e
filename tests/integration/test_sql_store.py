"""Integration tests for the PostgreSQL span store.

Require a reachable PostgreSQL server configured through the STORAGE_*
environment variables; skipped otherwise.
"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from tracelens.common.config import IngestionSettings, StorageSettings
from tracelens.common.database import create_engine
from tracelens.dependencies.job import DependencyJob
from tracelens.ingestion.ingestor import SpanIngestor
from tracelens.models.base import Base
from tracelens.schemas.job import JobConfig
from tracelens.schemas.span import DependencyLink
from tracelens.storage.base import span_key
from tracelens.storage.sql import SqlSpanStore

from tests.factories import DAY, many_spans, three_tier

TEST_KEYSPACE = "tracelens_it"


@pytest.fixture(scope="module")
def storage_settings() -> StorageSettings:
    return StorageSettings(keyspace=TEST_KEYSPACE, pool_size=2, max_overflow=0)


@pytest_asyncio.fixture
async def sql_store(storage_settings: StorageSettings) -> AsyncGenerator[SqlSpanStore, None]:
    """Store against a freshly created keyspace.

    Creates the schema and tables before the test and drops them after.
    """
    contact_point = storage_settings.contact_point_list[0]
    engine = create_engine(contact_point, TEST_KEYSPACE, storage_settings)
    try:
        async with engine.begin() as conn:
            await conn.execute(text(f"DROP SCHEMA IF EXISTS {TEST_KEYSPACE} CASCADE"))
            await conn.execute(text(f"CREATE SCHEMA {TEST_KEYSPACE}"))
            await conn.run_sync(Base.metadata.create_all)
    except (OSError, SQLAlchemyError) as e:
        await engine.dispose()
        pytest.skip(f"PostgreSQL not available: {e}")

    store = SqlSpanStore(TEST_KEYSPACE, storage_settings.contact_point_list, storage_settings)
    yield store
    await store.close()

    async with engine.begin() as conn:
        await conn.execute(text(f"DROP SCHEMA IF EXISTS {TEST_KEYSPACE} CASCADE"))
    await engine.dispose()


@pytest.mark.integration
class TestSqlSpanStore:
    """Test cases for SqlSpanStore."""

    @pytest.mark.asyncio
    async def test_keyspace_exists(self, sql_store: SqlSpanStore):
        assert await sql_store.keyspace_exists(TEST_KEYSPACE)
        assert not await sql_store.keyspace_exists("tracelens_missing")

    @pytest.mark.asyncio
    async def test_write_is_upsert(self, sql_store: SqlSpanStore):
        spans = three_tier()

        await sql_store.write(spans)
        await sql_store.write(spans + spans)

        stored = await sql_store.read_spans(DAY)
        assert sorted(span_key(s) for s in stored) == sorted(span_key(s) for s in spans)

    @pytest.mark.asyncio
    async def test_in_flight_returns_to_zero(self, sql_store: SqlSpanStore):
        ack = sql_store.write(many_spans(20))
        assert sum(sql_store.in_flight_count(h) for h in sql_store.connected_hosts()) == 1

        await ack

        assert all(sql_store.in_flight_count(h) == 0 for h in sql_store.connected_hosts())

    @pytest.mark.asyncio
    async def test_read_spans_returns_whole_traces(self, sql_store: SqlSpanStore):
        spans = three_tier(timestamp=(DAY + 1) * 86_400_000_000 - 100)
        await sql_store.write(spans)

        # Trace starts on DAY and ends on DAY + 1
        assert len(await sql_store.read_spans(DAY)) == 4
        assert len(await sql_store.read_spans(DAY + 1)) == 4
        assert await sql_store.read_spans(DAY + 2) == []

    @pytest.mark.asyncio
    async def test_write_links_replaces_day(self, sql_store: SqlSpanStore):
        await sql_store.write_links(DAY, [
            DependencyLink(parent="old", child="gone", call_count=1),
        ])
        await sql_store.write_links(DAY, [
            DependencyLink(parent="web", child="api", call_count=4, error_count=1),
            DependencyLink(parent="api", child="db", call_count=2),
        ])

        links = await sql_store.read_links(DAY)

        assert [(link.parent, link.child, link.call_count) for link in links] == [
            ("api", "db", 2),
            ("web", "api", 4),
        ]

    @pytest.mark.asyncio
    async def test_dependency_job(self, sql_store: SqlSpanStore, storage_settings: StorageSettings):
        """Test ingesting and running the job against PostgreSQL."""
        ingestor = SpanIngestor(sql_store, settings=IngestionSettings(drain_poll_interval_ms=5))
        await ingestor.ingest(three_tier("a") + three_tier("b"))

        config = JobConfig.from_settings(storage_settings, DAY)
        links = await DependencyJob(config, store=sql_store).run()

        assert [(link.parent, link.child, link.call_count) for link in links] == [
            ("backend", "db", 2),
            ("frontend", "backend", 2),
        ]
        assert await sql_store.read_links(DAY) == links
