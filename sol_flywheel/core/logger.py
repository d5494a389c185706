"""
Logger module for the SOL Flywheel.

This module provides the logging configuration for the application: structlog
events rendered as JSON, routed through stdlib handlers (console plus rotating
files) and a dedicated settlement log that records every submitted transaction.
"""

import logging
import logging.handlers
import os
import sys
import traceback
from collections.abc import Callable
from datetime import UTC, datetime
from functools import wraps
from pathlib import Path
from typing import Any

# Third-party imports
import structlog
from pythonjsonlogger import jsonlogger

DEFAULT_LOG_LEVEL = "INFO"

# Log file names
MAIN_LOG_FILE = "sol_flywheel.log"
ERROR_LOG_FILE = "error.log"
SETTLEMENT_LOG_FILE = "settlements.log"

SETTLEMENT_LOGGER_NAME = "sol_flywheel.settlements"

# Rotate at 10MB, keep 5 files
MAX_LOG_SIZE = 10 * 1024 * 1024
BACKUP_COUNT = 5

# stdlib record attributes written by the JSON formatter, and their output names
RECORD_FIELDS = "%(asctime)s %(levelname)s %(name)s %(module)s %(funcName)s %(lineno)d %(message)s"
RENAMED_FIELDS = {
    "asctime": "timestamp",
    "levelname": "level",
    "funcName": "function",
    "lineno": "line",
}


def get_log_dir() -> str:
    """Return the configured log directory."""
    return os.environ.get("SOL_FLYWHEEL_LOG_DIR", "logs")


def ensure_log_directory() -> str:
    """
    Create the log directory if needed.

    Returns:
        Path to the log directory
    """
    log_dir = Path(get_log_dir())
    log_dir.mkdir(parents=True, exist_ok=True)
    return str(log_dir)


def get_log_level() -> int:
    """
    Read the log level from ``SOL_FLYWHEEL_LOG_LEVEL``.

    Returns:
        Logging level as an integer, INFO for unknown names
    """
    name = os.environ.get("SOL_FLYWHEEL_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def configure_json_formatter() -> jsonlogger.JsonFormatter:
    """Build the JSON formatter shared by every handler."""
    return jsonlogger.JsonFormatter(
        RECORD_FIELDS,
        rename_fields=RENAMED_FIELDS,
        json_ensure_ascii=False,
        json_default=str,
    )


def build_handler(log_file: str | None = None, level: int = logging.DEBUG) -> logging.Handler:
    """
    Build a JSON handler writing to stdout, or to a rotating file in the log directory.

    Args:
        log_file: File name inside the log directory (default: stdout)
        level: Minimum level accepted by the handler

    Returns:
        Configured handler
    """
    if log_file is None:
        handler: logging.Handler = logging.StreamHandler(sys.stdout)
    else:
        handler = logging.handlers.RotatingFileHandler(
            Path(ensure_log_directory()) / log_file,
            maxBytes=MAX_LOG_SIZE,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
    handler.setLevel(level)
    handler.setFormatter(configure_json_formatter())
    return handler


def add_process_info(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Add process information to the event."""
    event_dict.setdefault("pid", os.getpid())
    event_dict.setdefault("process_name", sys.argv[0])
    return event_dict


def add_exception_info(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Add exception type and message to the event if an exception is being handled.

    The full traceback is rendered separately by ``format_exc_info``.
    """
    exception_type, exception_value, _ = sys.exc_info()
    if exception_type is not None:
        event_dict["exception_type"] = exception_type.__name__
        event_dict["exception_message"] = str(exception_value)
        if event_dict.get("exc_info") is None:
            event_dict["exception_traceback"] = traceback.format_exc()
    return event_dict


def add_timestamp(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Add an ISO-format UTC timestamp to the event."""
    event_dict["timestamp"] = datetime.now(UTC).isoformat().replace("+00:00", "Z")
    return event_dict


def configure_structlog() -> None:
    """Render structlog events as JSON strings handed to stdlib logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            add_timestamp,
            add_process_info,
            add_exception_info,
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _reset_handlers(target: logging.Logger, level: int, *handlers: logging.Handler) -> None:
    target.setLevel(level)
    target.propagate = False
    for old in list(target.handlers):
        target.removeHandler(old)
        old.close()
    for handler in handlers:
        target.addHandler(handler)


def setup_logger(name: str = "sol_flywheel") -> logging.Logger:
    """
    Configure structlog and the stdlib handlers behind it.

    The named logger gets console, main-file and error-file handlers; the
    settlement logger is (re)attached to its own file on every call.

    Args:
        name: Logger name

    Returns:
        Configured stdlib logger instance
    """
    log_level = get_log_level()
    configure_structlog()

    app_logger = logging.getLogger(name)
    _reset_handlers(
        app_logger,
        log_level,
        build_handler(),
        build_handler(MAIN_LOG_FILE),
        build_handler(ERROR_LOG_FILE, logging.ERROR),
    )
    _reset_handlers(
        logging.getLogger(SETTLEMENT_LOGGER_NAME),
        log_level,
        build_handler(SETTLEMENT_LOG_FILE),
    )
    return app_logger


def get_settlement_logger() -> structlog.stdlib.BoundLogger:
    """Logger for transaction submissions and confirmations."""
    return structlog.get_logger(SETTLEMENT_LOGGER_NAME)


def log_execution_time(logger: Any | None = None) -> Callable:
    """
    Decorator logging how long a coroutine function takes.

    Args:
        logger: structlog logger (default: the package logger)

    Returns:
        Decorator function
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            log = logger or structlog.get_logger("sol_flywheel")
            log.debug(f"Starting {func.__name__}")
            started = datetime.now(UTC)

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                log.error(
                    f"Error in {func.__name__}: {str(e)}",
                    execution_time=(datetime.now(UTC) - started).total_seconds(),
                    status="error",
                )
                raise

            log.debug(
                f"Completed {func.__name__}",
                execution_time=(datetime.now(UTC) - started).total_seconds(),
                status="success",
            )
            return result

        return wrapper

    return decorator


default_app_logger = setup_logger()
logger = structlog.get_logger("sol_flywheel")
