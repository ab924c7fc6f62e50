"""Logging configuration setup.

Builds the process-wide logging configuration with:
- dictConfig for the root logger and noisy third-party loggers
- QueueHandler + QueueListener so socket handlers never block on I/O
- ContextInjectingFilter so connection/user ids ride along on every record
- JSONL output for machine parsing, or plain text for local development
"""

from __future__ import annotations

import atexit
import logging
import logging.config
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import Queue
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from chat_service.core.settings.logs import LoggingSettings

_log_queue: Queue[logging.LogRecord] | None = None
_listener: QueueListener | None = None
_LOGGING_INITIALIZED = False

TEXT_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def shutdown() -> None:
    """Stop the QueueListener, flushing any pending records.

    Registered with atexit on first configuration; safe to call repeatedly.
    """
    global _log_queue, _listener, _LOGGING_INITIALIZED

    if _listener is not None:
        _listener.stop()
        _listener = None

    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, QueueHandler):
            root.removeHandler(handler)

    _log_queue = None
    _LOGGING_INITIALIZED = False


def setup_logging(
    log_settings: LoggingSettings | None = None,
    *,
    force: bool = False,
) -> None:
    """Ensure logging is configured once across entrypoints.

    Args:
        log_settings: Optional logging settings instance. If omitted, settings
            are loaded via get_logging_settings().
        force: Reconfigure logging even if it was already initialized.
    """
    global _LOGGING_INITIALIZED

    if _LOGGING_INITIALIZED and not force:
        return

    if log_settings is None:
        from chat_service.core.settings import get_logging_settings

        log_settings = get_logging_settings()

    configure_logging(
        log_level=log_settings.level,
        json_logs=log_settings.json_logs,
        console_enabled=log_settings.console_enabled,
        file_path=log_settings.file_path if log_settings.file_enabled else None,
        file_max_bytes=log_settings.file_max_bytes,
        file_backup_count=log_settings.file_backup_count,
        service_name=log_settings.service_name,
        quiet_loggers=log_settings.quiet_loggers,
    )
    _LOGGING_INITIALIZED = True


def configure_logging(
    log_level: str = "INFO",
    *,
    json_logs: bool = True,
    console_enabled: bool = True,
    file_path: str | Path | None = None,
    file_max_bytes: int = 10 * 1024 * 1024,
    file_backup_count: int = 5,
    service_name: str = "chat-service",
    quiet_loggers: list[str] | None = None,
) -> None:
    """Configure logging with dictConfig and the QueueHandler pattern.

    All handlers hang off a single QueueListener; the root logger only
    carries a QueueHandler and the context filter. Application loggers
    propagate up to it.

    Example:
        configure_logging(log_level="DEBUG", json_logs=False)
    """
    global _log_queue, _listener

    if _listener is not None:
        shutdown()

    path = Path(file_path) if file_path else None
    if path:
        path.parent.mkdir(parents=True, exist_ok=True)

    logging_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "root": {
            "level": log_level.upper(),
            "handlers": [],
        },
        "loggers": {
            name: {"level": "WARNING"} for name in (quiet_loggers or [])
        },
    }
    logging.config.dictConfig(logging_config)
    logging.captureWarnings(True)

    handlers = _build_handlers(
        json_logs=json_logs,
        console_enabled=console_enabled,
        file_path=path,
        file_max_bytes=file_max_bytes,
        file_backup_count=file_backup_count,
        service_name=service_name,
    )

    _log_queue = Queue()
    if handlers:
        _listener = QueueListener(_log_queue, *handlers, respect_handler_level=True)
        _listener.start()
        atexit.register(shutdown)

    # Context must be injected on the producing side, before the record
    # crosses the queue into the listener thread.
    from chat_service.infra.logging.context import ContextInjectingFilter

    queue_handler = QueueHandler(_log_queue)
    queue_handler.addFilter(ContextInjectingFilter())
    logging.getLogger().addHandler(queue_handler)


def _build_handlers(
    *,
    json_logs: bool,
    console_enabled: bool,
    file_path: Path | None,
    file_max_bytes: int,
    file_backup_count: int,
    service_name: str,
) -> list[logging.Handler]:
    from chat_service.infra.logging.formatters import JSONFormatter

    def make_formatter() -> logging.Formatter:
        if json_logs:
            return JSONFormatter(static={"service": service_name})
        return logging.Formatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)

    handlers: list[logging.Handler] = []

    if console_enabled:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(make_formatter())
        handlers.append(console_handler)

    if file_path:
        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=file_max_bytes,
            backupCount=file_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(make_formatter())
        handlers.append(file_handler)

    return handlers
