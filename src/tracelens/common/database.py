"""Async SQLAlchemy engine and session factories for the span store.

Uses asyncpg for PostgreSQL. One engine is created per contact point;
the keyspace is applied through a schema translate map so the same
table metadata serves every keyspace.
"""

from sqlalchemy import URL
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tracelens.common.config import StorageSettings, get_settings
from tracelens.schemas.job import parse_contact_point


def build_url(contact_point: str, settings: StorageSettings) -> URL:
    """Construct the asyncpg URL for one contact point."""
    host, port = parse_contact_point(contact_point)
    return URL.create(
        "postgresql+asyncpg",
        username=settings.user,
        password=settings.password.get_secret_value(),
        host=host,
        port=port,
        database=settings.database,
    )


def create_engine(
    contact_point: str,
    keyspace: str,
    settings: StorageSettings | None = None,
) -> AsyncEngine:
    """Create async SQLAlchemy engine with connection pooling.

    Args:
        contact_point: ``host:port`` of the node to connect to.
        keyspace: Schema the span tables live in.
        settings: Storage settings. Uses global settings if not provided.

    Returns:
        Configured async engine instance.
    """
    if settings is None:
        settings = get_settings().storage

    return create_async_engine(
        build_url(contact_point, settings),
        echo=settings.echo,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout,
        pool_pre_ping=True,
        execution_options={"schema_translate_map": {None: keyspace}},
        connect_args={
            "server_settings": {
                "application_name": "tracelens",
                "jit": "off",  # Disable JIT for more predictable latency
            },
            "command_timeout": 60,
        },
    )


def create_session_factory(
    engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    """Create async session factory for store operations.

    Args:
        engine: Async SQLAlchemy engine.

    Returns:
        Session factory for creating async sessions.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
