"""Dependency job entry point.

Usage:
    tracelens-dependencies            # today (UTC)
    tracelens-dependencies 2024-03-01

Keyspace, contact points and credentials come from the STORAGE_*
environment variables.
"""

import argparse
import asyncio
import sys
from datetime import date, datetime, timezone
from typing import NoReturn

from pydantic import ValidationError

from tracelens.common.config import get_settings
from tracelens.common.exceptions import ConfigurationError, TraceLensError
from tracelens.common.logging import bind_context, clear_context, get_logger, setup_logging
from tracelens.common.metrics import set_app_info
from tracelens.dependencies.job import DependencyJob
from tracelens.schemas.job import JobConfig
from tracelens.schemas.span import date_to_day

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Rebuild one day of service dependency links from stored spans",
    )
    parser.add_argument(
        "day",
        nargs="?",
        type=date.fromisoformat,
        help="UTC day to process as YYYY-MM-DD (default: today)",
    )
    parser.add_argument("--keyspace", help="Override STORAGE_KEYSPACE")
    parser.add_argument(
        "--contact-points",
        help="Override STORAGE_CONTACT_POINTS (comma-separated host:port)",
    )
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> None:
    """Run the dependency job for one day."""
    args = parse_args(argv)
    try:
        settings = get_settings()
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid settings",
            details={"errors": e.errors(include_url=False, include_context=False)},
            cause=e,
        ) from e

    setup_logging(settings.logging)
    set_app_info(version=settings.app_version, environment=settings.environment)

    storage = settings.storage
    if args.keyspace:
        storage = storage.model_copy(update={"keyspace": args.keyspace})
    if args.contact_points:
        storage = storage.model_copy(update={"contact_points": args.contact_points})

    day = args.day or datetime.now(timezone.utc).date()
    try:
        config = JobConfig.from_settings(storage, date_to_day(day))
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid storage configuration",
            details={"errors": e.errors(include_url=False, include_context=False)},
            cause=e,
        ) from e

    clear_context()
    bind_context(command="dependencies", date=day.isoformat())

    logger.info(
        "Starting dependency job",
        version=settings.app_version,
        keyspace=config.keyspace,
        contact_points=list(config.contact_points),
    )

    job = DependencyJob(
        config,
        storage_settings=storage,
        dependency_settings=settings.dependencies,
    )
    await job.run()


def run() -> NoReturn:
    """Run the dependency job."""
    try:
        asyncio.run(main())
        sys.exit(0)
    except KeyboardInterrupt:
        sys.exit(130)
    except TraceLensError as e:
        logger.error("Dependency job failed", **e.to_dict())
        sys.exit(1)


if __name__ == "__main__":
    run()
