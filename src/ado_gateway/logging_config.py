"""
Structured logging configuration for the Azure DevOps gateway.

This module provides logging setup with structured output, correlation ID
support, credential redaction and the request/response/error helpers used by
every facade operation.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from ado_gateway.utils.error_utils import REDACTED, SENSITIVE_KEYS, get_correlation_id, redact_sensitive

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED_ATTRS = frozenset({
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message',
})


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    extra = {}
    for key, value in record.__dict__.items():
        if key in _RESERVED_ATTRS or key.startswith('_'):
            continue
        if key.lower() in SENSITIVE_KEYS:
            extra[key] = REDACTED
            continue
        extra[key] = redact_sensitive(value)
    return extra


class StructuredFormatter(logging.Formatter):
    """
    Custom formatter that outputs structured JSON logs.

    Includes the correlation ID and any ``extra`` metadata, with credential
    fields masked.
    """

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        if self.include_extra:
            extra_fields = {}
            for key, value in _extra_fields(record).items():
                try:
                    # Ensure the value is JSON serializable
                    json.dumps(value)
                    extra_fields[key] = value
                except (TypeError, ValueError):
                    extra_fields[key] = str(value)

            if extra_fields:
                log_entry["extra"] = extra_fields

        return json.dumps(log_entry, ensure_ascii=False)


class ColoredConsoleFormatter(logging.Formatter):
    """
    Console formatter with colors for different log levels.

    Provides human-readable output for development environments.
    """

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors and correlation context."""
        level_color = self.COLORS.get(record.levelname, '')
        reset_color = self.COLORS['RESET']

        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S')

        parts = [
            f"{timestamp}",
            f"{level_color}{record.levelname:8}{reset_color}",
            f"{record.name}",
            f"{record.getMessage()}"
        ]

        extra = _extra_fields(record)
        if extra:
            parts.append(" ".join(f"{key}={value}" for key, value in extra.items()))

        correlation_id = get_correlation_id()
        if correlation_id:
            parts.append(f"[corr_id={correlation_id[:8]}]")

        if record.levelno >= logging.ERROR:
            parts.append(f"({record.filename}:{record.lineno})")

        log_line = " | ".join(parts)

        if record.exc_info:
            log_line += "\n" + self.formatException(record.exc_info)

        return log_line


def setup_logging(
    environment: str = "development",
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    enable_json_logs: Optional[bool] = None,
    enable_console_logs: bool = True,
    logger_levels: Optional[Dict[str, str]] = None,
) -> None:
    """
    Set up structured logging for the gateway.

    Args:
        environment: Environment name (development, staging, production)
        log_level: Minimum log level to capture
        log_file: Optional file path for log output
        enable_json_logs: Whether to use JSON formatting (auto-detected if None)
        enable_console_logs: Whether to log to the console (stderr)
        logger_levels: Per-logger level overrides
    """
    if enable_json_logs is None:
        enable_json_logs = environment in ("staging", "production")

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    handlers = []

    # stderr keeps stdout free for callers that speak a protocol over it
    if enable_console_logs:
        console_handler = logging.StreamHandler(sys.stderr)
        if enable_json_logs:
            console_handler.setFormatter(StructuredFormatter())
        else:
            console_handler.setFormatter(ColoredConsoleFormatter())
        console_handler.setLevel(numeric_level)
        handlers.append(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter())
        file_handler.setLevel(numeric_level)
        handlers.append(file_handler)

    logging.basicConfig(
        level=numeric_level,
        handlers=handlers,
        force=True
    )

    logger_configs = {
        "httpx": "WARNING",
        "httpcore": "WARNING",
        "msrest": "WARNING",
        "azure": "WARNING",
        "ado_gateway": logging.getLevelName(numeric_level),
    }
    logger_configs.update(logger_levels or {})

    for logger_name, level in logger_configs.items():
        logging.getLogger(logger_name).setLevel(getattr(logging, str(level).upper(), numeric_level))

    logger = logging.getLogger(__name__)
    logger.info(
        "Logging configured",
        extra={
            "environment": environment,
            "log_level": log_level,
            "json_logs": enable_json_logs,
            "console_logs": enable_console_logs,
            "log_file": log_file,
        }
    )


def configure_logging_from_settings(settings) -> None:
    """Configure logging from a loaded ``Settings`` object."""
    logging_settings = settings.logging

    setup_logging(
        environment=settings.ENVIRONMENT,
        log_level=logging_settings.level or settings.LOG_LEVEL,
        log_file=logging_settings.file,
        enable_json_logs=logging_settings.json_format,
        enable_console_logs=logging_settings.console,
        logger_levels=logging_settings.logger_levels,
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


class LoggerMixin:
    """
    Mixin class to add logging capabilities to other classes.

    Provides a logger instance and convenience methods for structured logging.
    """

    @property
    def logger(self) -> logging.Logger:
        """Get logger instance for this class."""
        return logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    def log_info(self, message: str, **kwargs) -> None:
        """Log info message with context."""
        self.logger.info(message, extra=kwargs)

    def log_warning(self, message: str, **kwargs) -> None:
        """Log warning message with context."""
        self.logger.warning(message, extra=kwargs)

    def log_error(self, message: str, exception: Optional[Exception] = None, **kwargs) -> None:
        """Log error message with context and optional exception."""
        if exception:
            kwargs["exception_type"] = type(exception).__name__
            kwargs["exception_message"] = str(exception)

        self.logger.error(message, extra=kwargs, exc_info=exception is not None)

    def log_debug(self, message: str, **kwargs) -> None:
        """Log debug message with context."""
        self.logger.debug(message, extra=kwargs)


_api_logger = logging.getLogger("ado_gateway.api")


def log_request(operation: str, target: str, **metadata) -> None:
    """Log the outbound intent of a facade operation."""
    _api_logger.info(
        "API request",
        extra={"operation": operation, "target": str(target), **redact_sensitive(metadata)},
    )


def log_response(operation: str, target: str, duration_ms: float, **metadata) -> None:
    """Log completion of a facade operation with its elapsed time."""
    _api_logger.info(
        "API response",
        extra={
            "operation": operation,
            "target": str(target),
            "duration_ms": round(duration_ms, 2),
            **redact_sensitive(metadata),
        },
    )


def log_operation_error(error: BaseException, context: Optional[Dict[str, Any]] = None) -> None:
    """Log a failed facade operation with its structured context."""
    extra = {
        "exception_type": type(error).__name__,
        "exception_message": str(error),
    }
    to_dict = getattr(error, "to_dict", None)
    if callable(to_dict):
        error_info = to_dict()
        extra["error_code"] = error_info.get("error_code")
        extra["error_kind"] = error_info.get("error_kind")
    extra.update(redact_sensitive(context or {}))

    _api_logger.error("Operation failed", extra=extra)
