"""Structured logging using structlog.

Entry points call ``setup_logging`` once. Library components
(ingestor, monitor, aggregator, job) never touch log levels; they take
an optional logger and fall back to ``get_logger(__name__)``.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from tracelens.common.config import LoggingSettings, Settings, get_settings

# Driver loggers that are chatty at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "asyncpg")


class ServiceContext:
    """Processor stamping every entry with the application identity."""

    def __init__(self, settings: Settings) -> None:
        self._context = {
            "service": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        }

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        for key, value in self._context.items():
            event_dict.setdefault(key, value)
        return event_dict


def _processors(settings: LoggingSettings, app: Settings) -> list[Processor]:
    processors: list[Processor] = []
    if settings.include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))

    processors += [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.include_caller:
        processors.append(structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.MODULE,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ))

    processors.append(ServiceContext(app))

    if settings.format == "json":
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.rich_traceback,
        ))
    return processors


def setup_logging(settings: LoggingSettings | None = None) -> None:
    """Configure structlog and the standard library root logger.

    Args:
        settings: Logging settings. Uses global settings if not provided.
    """
    app = get_settings()
    if settings is None:
        settings = app.logging

    structlog.configure(
        processors=_processors(settings, app),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.level),
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.stdlib.BoundLogger:
    """Get a logger, optionally with bound context.

    Example:
        logger = get_logger(__name__, day=19675)
        logger.info("Links written", links=12)
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger


def bind_context(**context: Any) -> None:
    """Bind context for the current task; merged into every entry."""
    structlog.contextvars.bind_contextvars(**context)


def clear_context() -> None:
    """Drop everything bound with ``bind_context``."""
    structlog.contextvars.clear_contextvars()
