"""Structured logging configuration.

recordstore is a library, so records are routed through the standard
``logging`` module under the ``recordstore`` logger and the host
application decides where they go. Loggers are wrapped per call, so the
global structlog configuration is never touched. setup_logging() installs
a handler rendering records as JSON or console lines; the container only
calls it when ``observability.configure_logging`` is set.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from opentelemetry import trace
from structlog.types import Processor

ROOT_LOGGER = "recordstore"


def add_trace_context(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Attach the ids of the active span, if any, to the entry."""
    context = trace.get_current_span().get_span_context()
    if context.is_valid:
        event_dict["trace_id"] = format(context.trace_id, "032x")
        event_dict["span_id"] = format(context.span_id, "016x")
    return event_dict


_shared_processors: list[Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    add_trace_context,
]

_logger_processors: list[Processor] = [
    structlog.stdlib.filter_by_level,
    *_shared_processors,
    structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
]


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
) -> structlog.stdlib.BoundLogger:
    """
    Install a stdout handler on the recordstore logger.

    Calling it again replaces the handler, so the level and format can be
    changed at runtime.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'console')

    Returns:
        The package root logger
    """
    if log_format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    package_logger = logging.getLogger(ROOT_LOGGER)
    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    package_logger.setLevel(level.upper())
    package_logger.propagate = False

    return get_logger(ROOT_LOGGER)


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.stdlib.BoundLogger:
    """
    Get a bound logger instance.

    Args:
        name: Logger name (module name typically)
        **initial_context: Initial context to bind to the logger

    Returns:
        A bound structlog logger
    """
    return structlog.wrap_logger(
        logging.getLogger(name or ROOT_LOGGER),
        processors=_logger_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        **initial_context,
    )
