"""Structured logging for the progression service.

Engine events (completions, level-ups, payouts) are emitted through
structlog and stamped with the service name and environment so they can be
filtered out of a shared log stream.
"""

import logging
import sys
from typing import Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper, add_log_level
from structlog.stdlib import add_logger_name

from app.core.config import settings

SQL_LOGGER = "sqlalchemy.engine"


def add_service_context(logger, method_name, event_dict):
    """Stamp every event with where it came from."""
    event_dict.setdefault("service", settings.SERVICE_NAME)
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    return event_dict


def setup_logging(log_format: Optional[str] = None, log_level: Optional[str] = None):
    """Configure structlog and the stdlib root logger.

    ``log_format`` and ``log_level`` default to LOG_FORMAT / LOG_LEVEL.
    """
    log_format = log_format or settings.LOG_FORMAT
    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper())

    if log_format == "json":
        renderer = JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            add_service_context,
            add_log_level,
            add_logger_name,
            TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout)
    logging.getLogger().setLevel(level)

    # SQL statements only when DATABASE_ECHO is on
    logging.getLogger(SQL_LOGGER).setLevel(logging.INFO if settings.DATABASE_ECHO else logging.WARNING)
