"""Structured logging configuration.

Query text, formulas and function bodies come from users and can be long, so
the processors below cut them down before rendering.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Event keys that carry user-authored text
USER_TEXT_KEYS = ("query", "expression", "body")
MAX_USER_TEXT = 200


def truncate_user_text(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """
    Shorten user-authored text fields to ``MAX_USER_TEXT`` characters.

    Args:
        _: The wrapped logger (unused)
        __: The log method name (unused)
        event_dict: The event being rendered

    Returns:
        The event with long ``query``, ``expression`` and ``body`` values cut
    """
    for key in USER_TEXT_KEYS:
        value = event_dict.get(key)
        if isinstance(value, str) and len(value) > MAX_USER_TEXT:
            event_dict[key] = value[:MAX_USER_TEXT] + f"... ({len(value)} chars)"
    return event_dict


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
) -> None:
    """
    Set up structured logging with structlog.

    The standard library root logger is configured too, so records from the
    domain services (which use ``logging.getLogger``) reach the same stream.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'console')
    """
    log_level = getattr(logging, level.upper())
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
        level=log_level,
    )
    # The sandbox pool logs through this name; keep it at the same level
    logging.getLogger("gridql").setLevel(log_level)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        truncate_user_text,
        structlog.processors.format_exc_info,
    ]

    renderer: Processor
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """
    Get a bound logger instance.

    Args:
        name: Logger name (module name typically)
        **initial_context: Initial context to bind to the logger

    Returns:
        A bound structlog logger
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger
