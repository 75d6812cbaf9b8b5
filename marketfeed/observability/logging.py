"""Structured logging configuration."""

import logging
import sys
from typing import TextIO

import structlog


def configure_logging(
    level: int = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
) -> None:
    """Configure structured logging for the application.

    Sets up structlog with timestamps, log levels, and contextvars-bound
    context. Rebuild workers run on background threads, so segment context
    is carried through contextvars rather than thread-locals.

    Args:
        level: Logging level (default: INFO).
        output: Output stream (default: stderr).
        json_format: Whether to use JSON format (default: True).
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )

    # redis-py and the schedule library log through the standard library
    logging.basicConfig(
        format="%(message)s",
        stream=output,
        level=level,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a bound logger instance.

    Args:
        name: Optional logger name.

    Returns:
        Bound logger instance.
    """
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


def bind_segment_context(segment: str, rebuild_id: str | None = None) -> None:
    """Bind segment (and optionally rebuild) context to subsequent log messages.

    Args:
        segment: Feed segment being processed.
        rebuild_id: Identifier of the rebuild in progress.
    """
    if rebuild_id is None:
        structlog.contextvars.bind_contextvars(segment=segment)
    else:
        structlog.contextvars.bind_contextvars(segment=segment, rebuild_id=rebuild_id)


def clear_segment_context() -> None:
    """Clear segment context from log messages."""
    structlog.contextvars.unbind_contextvars("segment", "rebuild_id")
