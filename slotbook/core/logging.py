"""Logging configuration."""

import logging
import sys

import structlog

from slotbook.config import settings

# Chatty libraries that only log useful detail at DEBUG
_QUIET_LOGGERS = ("sqlalchemy.engine", "asyncio")


def configure_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Configure structured logging.

    Args:
        log_level: Overrides ``LOG_LEVEL``
        log_format: ``json`` or ``console``, overrides ``LOG_FORMAT``
    """
    level = getattr(logging, (log_level or settings.log_level).upper())
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if (log_format or settings.log_format) == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    if not settings.debug:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))
