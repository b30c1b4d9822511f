"""
Structured logging configuration using structlog.

JSON lines in production, colored console output otherwise. Stdlib
``logging`` records (the engine modules log through ``logging.getLogger``)
go through the same processors, so bound context such as ``request_id`` or
``alert_id`` shows up on every line.
"""

import logging
import sys

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from deferred_alerts.config.settings import Settings, get_settings

SERVICE_NAME = "deferred-alerts"

# Libraries that are chatty at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "asyncpg", "uvicorn.access")


def _add_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def setup_logging(settings: Settings | None = None, level: str | None = None) -> None:
    """
    Configure structured logging for the application.

    Args:
        settings: Settings to read environment and log level from
        level: Overrides ``settings.log_level`` (e.g. ``"DEBUG"`` from --debug)

    Usage:
        setup_logging()
        logger = structlog.get_logger(__name__)
        logger.info("Alert armed", alert_id=12, due_at=1700000000000)
    """
    settings = settings or get_settings()
    level = level or settings.log_level

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_production:
        processors = shared_processors + [
            _add_service,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level),
    )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_context(**kwargs) -> None:
    """Bind key-value pairs to every subsequent log line of this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
