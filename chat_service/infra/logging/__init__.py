"""Logging infrastructure.

Structured logging with:
- JSONL format for log aggregation
- Automatic context injection (connection_id, user_id, ...)
- QueueHandler + QueueListener for non-blocking I/O
- Lazy evaluation for expensive debug payloads
- OpenTelemetry trace correlation

Basic usage:
    from chat_service.infra.logging import set_log_context
    import logging

    logger = logging.getLogger(__name__)

    set_log_context(connection_id="c-1", user_id="u-1")
    logger.info("Processing frame")  # Includes connection_id and user_id
"""

from chat_service.infra.logging.config import configure_logging, setup_logging, shutdown
from chat_service.infra.logging.context import (
    ContextInjectingFilter,
    clear_log_context,
    get_log_context,
    log_context,
    remove_from_log_context,
    set_log_context,
)
from chat_service.infra.logging.formatters import JSONFormatter
from chat_service.infra.logging.lazy import LazyLoggerAdapter, get_lazy_logger, lazy

__all__ = [
    "ContextInjectingFilter",
    "JSONFormatter",
    "LazyLoggerAdapter",
    "clear_log_context",
    "configure_logging",
    "get_lazy_logger",
    "get_log_context",
    "lazy",
    "log_context",
    "remove_from_log_context",
    "set_log_context",
    "setup_logging",
    "shutdown",
]
