"""
schemaledger Structured Logging.

Structured logging for migration runs. Keyword arguments passed to the
logger become record attributes, so a run can be followed per version in
JSON log aggregators or read as plain text on a terminal.
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Global logger registry
_loggers: Dict[str, "StructuredLogger"] = {}
_logging_configured = False

ROOT_LOGGER_NAME = "schemaledger"
DEFAULT_SERVICE_NAME = "schemaledger"

# Standard LogRecord attributes, never treated as context
_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "message",
        "taskName",
    }
)


def _record_context(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Each record becomes one JSON object per line. Context passed through
    ``StructuredLogger`` keyword arguments (``version``, ``migration``,
    ``duration_ms``...) is nested under ``extra``.
    """

    def __init__(
        self,
        service_name: str = DEFAULT_SERVICE_NAME,
        include_traceback: bool = True,
        extra_fields: Optional[Dict[str, Any]] = None,
    ):
        super().__init__()
        self.service_name = service_name
        self.include_traceback = include_traceback
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "source": {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        if record.exc_info:
            exc_type, exc_value = record.exc_info[0], record.exc_info[1]
            log_entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
            }
            if self.include_traceback:
                log_entry["exception"]["traceback"] = traceback.format_exception(
                    *record.exc_info
                )

        extra = {}
        for key, value in _record_context(record).items():
            # Keep serializable values as-is, stringify the rest
            try:
                json.dumps(value)
                extra[key] = value
            except (TypeError, ValueError):
                extra[key] = str(value)

        if extra:
            log_entry["extra"] = extra

        if self.extra_fields:
            log_entry.update(self.extra_fields)

        return json.dumps(log_entry, default=str)


class TextFormatter(logging.Formatter):
    """
    Readable single-line formatter for terminals.

    Context fields are appended as ``key=value`` pairs after the message.
    """

    def __init__(self, include_context: bool = True, include_location: bool = False):
        super().__init__()
        self.include_context = include_context
        self.include_location = include_location

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
            "%Y-%m-%d %H:%M:%S.%f"
        )[:-3]
        line = f"{timestamp} {record.levelname:8s} [{record.name}] {record.getMessage()}"

        if self.include_context:
            context = _record_context(record)
            if context:
                line += " " + " ".join(f"{k}={v}" for k, v in context.items())

        parts = [line]
        if self.include_location:
            parts.append(f"  at {record.filename}:{record.lineno} in {record.funcName}")
        if record.exc_info:
            parts.append(self.formatException(record.exc_info))

        return "\n".join(parts)


class StructuredLogger:
    """
    Structured logger wrapper with context management.

    Persistent context set with ``set_context`` (or temporarily with
    ``with_context``) is merged into every record along with the keyword
    arguments of the individual call.
    """

    def __init__(self, name: str, level: Optional[int] = None):
        """
        Initialize structured logger.

        Args:
            name: Logger name (typically __name__)
            level: Logging level, None inherits from the parent logger
        """
        self._logger = logging.getLogger(name)
        if level is not None:
            self._logger.setLevel(level)
        self._context: Dict[str, Any] = {}

    @property
    def name(self) -> str:
        return self._logger.name

    def is_enabled_for(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    def set_context(self, **kwargs):
        """Set persistent context fields for all subsequent logs."""
        self._context.update(kwargs)

    def clear_context(self):
        """Clear all context fields."""
        self._context.clear()

    def with_context(self, **kwargs) -> "LogContext":
        """
        Create a context manager for temporary context.

        Usage:
            with logger.with_context(run_id="20240101"):
                logger.info("Applying pending migrations")
        """
        return LogContext(self, kwargs)

    def _log(self, level: int, msg: str, *args, exc_info: bool = False, **kwargs):
        extra = {**self._context, **kwargs}
        self._logger.log(level, msg, *args, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, *args, **kwargs):
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, exc_info: bool = False, **kwargs):
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        """Log exception with traceback."""
        self._log(logging.ERROR, msg, *args, exc_info=True, **kwargs)

    def timing(
        self,
        operation: str,
        duration_ms: float,
        success: bool = True,
        **tags: Any,
    ):
        """Log an operation timing."""
        self.info(
            f"{operation} completed in {duration_ms:.2f}ms",
            operation=operation,
            duration_ms=duration_ms,
            success=success,
            **tags,
        )


class LogContext:
    """Context manager for temporary logging context."""

    def __init__(self, logger: StructuredLogger, context: Dict[str, Any]):
        self._logger = logger
        self._context = context
        self._original_context: Dict[str, Any] = {}

    def __enter__(self):
        for key in self._context:
            if key in self._logger._context:
                self._original_context[key] = self._logger._context[key]
        self._logger.set_context(**self._context)
        return self._logger

    def __exit__(self, exc_type, exc_val, exc_tb):
        for key in self._context:
            if key in self._original_context:
                self._logger._context[key] = self._original_context[key]
            else:
                self._logger._context.pop(key, None)
        return False


def setup_logging(
    level: str = "INFO",
    format_type: str = "text",
    service_name: str = DEFAULT_SERVICE_NAME,
    output: str = "stderr",
    extra_fields: Optional[Dict[str, Any]] = None,
):
    """
    Configure the ``schemaledger`` logger hierarchy.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: "json" or "text"
        service_name: Service name for JSON logs
        output: "stderr", "stdout", or a file path
        extra_fields: Additional fields to include in JSON logs
    """
    global _logging_configured

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if output == "stderr":
        handler = logging.StreamHandler(sys.stderr)
    elif output == "stdout":
        handler = logging.StreamHandler(sys.stdout)
    else:
        handler = logging.FileHandler(output)

    if format_type.lower() == "json":
        formatter: logging.Formatter = JSONFormatter(
            service_name=service_name,
            extra_fields=extra_fields,
        )
    else:
        formatter = TextFormatter()

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    _logging_configured = True


def is_logging_configured() -> bool:
    return _logging_configured


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger for the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        StructuredLogger instance, cached per name
    """
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name)

    return _loggers[name]
