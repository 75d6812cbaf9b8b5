"""Observability module for structured logging."""

from marketfeed.observability.logging import (
    bind_segment_context,
    clear_segment_context,
    configure_logging,
    get_logger,
)


__all__ = [
    "bind_segment_context",
    "clear_segment_context",
    "configure_logging",
    "get_logger",
]
