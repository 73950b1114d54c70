"""Structured logging configuration.

Events are snake_case names with key/value context, e.g.::

    {"event": "transaction_committed", "database": "tutorial", "tx_id": 1008, ...}

Log output goes to stderr so it never mixes with query results printed by a
REPL session on stdout.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from factdb.domain.value_objects import Keyword, Symbol, TempId


def _plain_values(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    # Keywords and tempids are rendered as their plain text
    for key, value in event_dict.items():
        if isinstance(value, (Keyword, Symbol)):
            event_dict[key] = str.__str__(value)
        elif isinstance(value, TempId):
            event_dict[key] = repr(value)
    return event_dict


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    stream: TextIO | None = None,
) -> None:
    """
    Configure structlog for the fact database.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: 'json' for machine-readable output, 'console' for a REPL session
        stream: Where to write events; stderr if None
    """
    numeric_level = getattr(logging, level.upper())
    output = stream or sys.stderr

    logging.basicConfig(format="%(message)s", stream=output, level=numeric_level)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _plain_values,
        structlog.processors.format_exc_info,
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=output.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """
    Get a bound logger instance.

    Args:
        name: Logger name (module name typically)
        **initial_context: Context bound to every event, e.g. ``database="tutorial"``
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger
