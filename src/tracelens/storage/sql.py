"""PostgreSQL span store using SQLAlchemy asyncio.

Every contact point is treated as a coordinator that accepts writes;
span writes are spread round-robin over them and run as background
tasks, so ``write`` returns before the rows are committed. Reads and
link replacement go through the first contact point.
"""

import asyncio
import itertools
from collections import defaultdict
from collections.abc import Sequence

from sqlalchemy import delete, inspect, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from tracelens.common.config import StorageSettings, get_settings
from tracelens.common.database import create_engine, create_session_factory
from tracelens.common.exceptions import StorageError
from tracelens.common.logging import get_logger
from tracelens.models.span import DependencyLinkRecord, SpanRecord
from tracelens.schemas.job import JobConfig
from tracelens.schemas.span import DependencyLink, Span
from tracelens.storage.base import span_key

logger = get_logger(__name__)

_SPAN_KEY_COLUMNS = ["trace_id", "span_id", "shared", "kind"]


class SqlSpanStore:
    """Span store backed by PostgreSQL."""

    def __init__(
        self,
        keyspace: str,
        contact_points: Sequence[str],
        settings: StorageSettings | None = None,
    ) -> None:
        """Initialize store.

        Connections are opened lazily by the engines.

        Args:
            keyspace: PostgreSQL schema holding the span tables.
            contact_points: ``host:port`` addresses of coordinator nodes.
            settings: Storage settings for credentials and pooling.
        """
        if not contact_points:
            raise StorageError("at least one contact point is required")
        if settings is None:
            settings = get_settings().storage

        self._keyspace = keyspace
        self._hosts = list(contact_points)
        self._engines: dict[str, AsyncEngine] = {
            host: create_engine(host, keyspace, settings) for host in self._hosts
        }
        self._sessions: dict[str, async_sessionmaker[AsyncSession]] = {
            host: create_session_factory(engine) for host, engine in self._engines.items()
        }
        self._host_cycle = itertools.cycle(self._hosts)
        self._in_flight: dict[str, int] = defaultdict(int)
        self._pending: set[asyncio.Task[None]] = set()

    @classmethod
    def from_job_config(
        cls,
        config: JobConfig,
        settings: StorageSettings | None = None,
    ) -> "SqlSpanStore":
        """Create a store for a dependency job."""
        return cls(config.keyspace, config.contact_points, settings)

    @property
    def _primary(self) -> str:
        return self._hosts[0]

    def write(self, spans: Sequence[Span]) -> "asyncio.Future[None]":
        host = next(self._host_cycle)
        # One row per identity, a statement cannot upsert the same row twice
        rows = list({span_key(span): SpanRecord.values_from_span(span) for span in spans}.values())
        self._in_flight[host] += 1

        task = asyncio.get_running_loop().create_task(self._upsert_spans(host, rows))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        task.add_done_callback(lambda _: self._acknowledge(host))
        return task

    def _acknowledge(self, host: str) -> None:
        self._in_flight[host] -= 1

    async def _upsert_spans(self, host: str, rows: list[dict]) -> None:
        if not rows:
            return

        stmt = insert(SpanRecord).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=_SPAN_KEY_COLUMNS,
            set_={
                "parent_id": stmt.excluded.parent_id,
                "timestamp": stmt.excluded.timestamp,
                "day": stmt.excluded.day,
                "duration": stmt.excluded.duration,
                "local_service_name": stmt.excluded.local_service_name,
                "remote_service_name": stmt.excluded.remote_service_name,
                "tags": stmt.excluded.tags,
            },
        )

        try:
            async with self._sessions[host]() as session:
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            logger.warning("Span write failed", host=host, spans=len(rows), error=str(e))
            raise StorageError(
                "Span write failed",
                details={"host": host, "spans": len(rows)},
                cause=e,
            ) from e

    def connected_hosts(self) -> set[str]:
        return set(self._hosts)

    def in_flight_count(self, host: str) -> int:
        return self._in_flight.get(host, 0)

    async def read_spans(self, day: int) -> list[Span]:
        traces_in_day = (
            select(SpanRecord.trace_id)
            .where(SpanRecord.day == day)
            .distinct()
        )
        try:
            async with self._sessions[self._primary]() as session:
                result = await session.execute(
                    select(SpanRecord).where(SpanRecord.trace_id.in_(traces_in_day))
                )
                records = result.scalars().all()
        except SQLAlchemyError as e:
            raise StorageError("Span read failed", details={"day": day}, cause=e) from e

        return [record.to_span() for record in records]

    async def write_links(self, day: int, links: Sequence[DependencyLink]) -> None:
        try:
            async with self._sessions[self._primary]() as session:
                async with session.begin():
                    await session.execute(
                        delete(DependencyLinkRecord).where(DependencyLinkRecord.day == day)
                    )
                    if links:
                        await session.execute(
                            insert(DependencyLinkRecord).values([
                                {
                                    "day": day,
                                    "parent": link.parent,
                                    "child": link.child,
                                    "call_count": link.call_count,
                                    "error_count": link.error_count,
                                }
                                for link in links
                            ])
                        )
        except SQLAlchemyError as e:
            raise StorageError(
                "Link write failed",
                details={"day": day, "links": len(links)},
                cause=e,
            ) from e

    async def read_links(self, day: int) -> list[DependencyLink]:
        try:
            async with self._sessions[self._primary]() as session:
                result = await session.execute(
                    select(DependencyLinkRecord)
                    .where(DependencyLinkRecord.day == day)
                    .order_by(DependencyLinkRecord.parent, DependencyLinkRecord.child)
                )
                records = result.scalars().all()
        except SQLAlchemyError as e:
            raise StorageError("Link read failed", details={"day": day}, cause=e) from e

        return [record.to_link() for record in records]

    async def keyspace_exists(self, name: str) -> bool:
        try:
            async with self._engines[self._primary].connect() as conn:
                return await conn.run_sync(
                    lambda sync_conn: inspect(sync_conn).has_schema(name)
                )
        except SQLAlchemyError as e:
            raise StorageError("Keyspace lookup failed", details={"keyspace": name}, cause=e) from e

    async def close(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        for engine in self._engines.values():
            await engine.dispose()
