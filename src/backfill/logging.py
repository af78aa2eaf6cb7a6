"""Structured logging for the backfill pipelines using structlog.

Both market pipelines share one event loop, so per-pipeline context lives on
bound logger instances (see ``pipeline_logger``) instead of contextvars,
which would leak between the two pipeline tasks.
"""

import logging
import os
import sys
from typing import Any, TextIO

import structlog

from backfill.models import MarketType

# Third-party loggers that are chatty at DEBUG and INFO.
_QUIET_LOGGERS = ("ccxt", "aiosqlite", "asyncio")

_RENDERERS: dict[str, type] = {
    "json": structlog.processors.JSONRenderer,
    "console": structlog.dev.ConsoleRenderer,
}


def _shared_processors(log_format: str) -> list[structlog.types.Processor]:
    processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    # ConsoleRenderer prints tracebacks itself
    if log_format == "json":
        processors.append(structlog.processors.format_exc_info)
    return processors


def setup_logging(
    log_level: str = "INFO",
    log_format: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """Route structlog and stdlib logging through one handler.

    Args:
        log_level: Root level name, e.g. "DEBUG".
        log_format: "json" or "console"; defaults to the LOG_FORMAT
            environment variable, then "console". Unknown values fall back
            to "console".
        stream: Destination, stderr unless given.
    """
    log_format = (log_format or os.environ.get("LOG_FORMAT", "console")).lower()
    if log_format not in _RENDERERS:
        log_format = "console"

    structlog.configure(
        processors=[
            *_shared_processors(log_format),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _RENDERERS[log_format](),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def pipeline_logger(name: str, market: MarketType, **context: Any) -> structlog.stdlib.BoundLogger:
    """Logger carrying ``market`` (and any extra context) on every event."""
    return get_logger(name).bind(market=market.value, **context)
