"""
Structured logging configuration using structlog.

One setup for the whole engine: colored console output while developing,
JSON lines in production. Request-scoped fields (user_id, city_id) are
carried through structlog contextvars, so every log line emitted while a
feed is being ranked is tagged with the request it belongs to.

Usage:
    from core.logging import configure_logging, get_logger

    configure_logging(json_logs=False)   # Development
    configure_logging(json_logs=True)    # Production

    logger = get_logger(__name__)
    logger.info("Ranked feed", user_id="u1", items=20)
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog
from structlog.types import Processor


def configure_logging(
    json_logs: bool = False,
    log_level: str = "INFO",
    include_timestamp: bool = True,
) -> None:
    """
    Install the structlog processor chain and route it through stdlib logging.

    Args:
        json_logs: Render sorted JSON lines instead of the dev console renderer.
        log_level: Level name handed to ``logging.basicConfig``.
        include_timestamp: Stamp events with a UTC ISO time.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if include_timestamp:
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso", utc=True))

    if json_logs:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        ))

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
        level=getattr(logging, log_level.upper()),
    )

    # redis-py logs every reconnect attempt at INFO
    logging.getLogger("redis").setLevel(logging.WARNING)


def configure_logging_from_settings(settings: Any) -> None:
    """Configure logging from a ``config.Settings`` instance."""
    configure_logging(
        json_logs=settings.json_logs or settings.is_production,
        log_level=settings.log_level,
    )


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Logger bound to ``name``; modules pass ``__name__``."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """
    Attach fields to the contextvars dict merged into each event.

    Usage:
        bind_context(user_id="u1", city_id="nyc")
        logger.info("Scoring")  # carries user_id and city_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Drop every bound context field."""
    structlog.contextvars.clear_contextvars()


def unbind_context(*keys: str) -> None:
    """Remove the named fields, leaving the rest bound."""
    structlog.contextvars.unbind_contextvars(*keys)


@contextmanager
def request_context(**kwargs: Any) -> Iterator[None]:
    """
    Bind fields for the duration of a ``with`` block, then unbind them.

    Fields bound by an outer caller under other names are left alone.
    """
    bind_context(**kwargs)
    try:
        yield
    finally:
        unbind_context(*kwargs.keys())


class LoggerMixin:
    """
    Gives stores and rankers a ``logger`` named after their class, so
    ``InMemoryHistoryStore`` lines show up under that name.
    """

    @property
    def logger(self) -> structlog.stdlib.BoundLogger:
        return get_logger(self.__class__.__name__)
