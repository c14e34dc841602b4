"""
Logging configuration for the Astro Portal services.

- JSON records in production, coloured console lines in development
- Request ID correlation across the store, ad service and export pipeline
- Error and timing helpers used in place of ad-hoc prints
"""
import logging
import sys
import json
import time
import traceback
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from contextvars import ContextVar
from uuid import uuid4
import inspect

from astro_portal.core.config import settings

# Context variable for request ID tracking
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)

_RESERVED_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "message", "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "extra_fields", "taskName",
}

# Third-party loggers that are chatty at INFO
_QUIET_LOGGERS = (
    "uvicorn.access", "httpx", "httpcore", "hpack",
    "postgrest", "supabase", "gotrue", "fontTools",
)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging in production."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        if hasattr(record, "extra_fields") and isinstance(record.extra_fields, dict):
            log_data.update(record.extra_fields)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class EnhancedFormatter(logging.Formatter):
    """Coloured single-line formatter for development."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
        'RESET': '\033[0m'
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset = self.COLORS['RESET']

        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]

        request_id = request_id_var.get()
        request_id_str = f"[{request_id[:8]}]" if request_id else "[--------]"

        log_line = " | ".join([
            f"{color}{timestamp}{reset}",
            f"{color}{record.levelname:8}{reset}",
            request_id_str,
            f"{record.name}:{record.lineno}",
            f"- {record.getMessage()}",
        ])

        if record.exc_info:
            log_line += f"\n{''.join(traceback.format_exception(*record.exc_info))}"

        return log_line


def setup_logging():
    """
    Configure the root logger.

    Uses JSON format in production for log shipping,
    and the coloured format everywhere else.
    """
    log_level = logging.DEBUG if settings.DEBUG else logging.INFO

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(JSONFormatter() if settings.IS_PRODUCTION else EnhancedFormatter())

    root_logger.addHandler(console_handler)
    root_logger.setLevel(log_level)

    logging.getLogger("uvicorn").setLevel(logging.INFO)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={
            "environment": settings.ENVIRONMENT,
            "log_level": logging.getLevelName(log_level),
            "format": "JSON" if settings.IS_PRODUCTION else "Enhanced"
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger named after the calling module unless a name is given."""
    if name is None:
        frame = inspect.currentframe().f_back
        if frame:
            name = frame.f_globals.get('__name__', 'astro_portal')

    return logging.getLogger(name)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set (or generate) the request ID for the current context."""
    if request_id is None:
        request_id = str(uuid4())
    request_id_var.set(request_id)
    return request_id


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def log_error(
    logger: logging.Logger,
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
    level: int = logging.ERROR
):
    """
    Log an error with its type, message and caller-supplied context.

    Args:
        logger: Logger instance
        error: Exception to log
        context: Additional context dictionary
        level: Log level (default: ERROR)
    """
    error_context = {
        "error_type": type(error).__name__,
        "error_message": str(error),
    }
    if context:
        error_context.update(context)

    request_id = get_request_id()
    if request_id:
        error_context["request_id"] = request_id

    logger.log(
        level,
        f"Error: {type(error).__name__}: {error}",
        exc_info=(type(error), error, error.__traceback__) if level >= logging.ERROR else None,
        extra={"extra_fields": error_context}
    )


def log_performance(
    logger: logging.Logger,
    operation: str,
    duration: float,
    context: Optional[Dict[str, Any]] = None
):
    """Log how long an operation took, in seconds and milliseconds."""
    perf_data = {
        "operation": operation,
        "duration_seconds": round(duration, 4),
        "duration_ms": round(duration * 1000, 2),
    }
    if context:
        perf_data.update(context)

    logger.info(
        f"Performance: {operation} took {duration:.4f}s",
        extra={"extra_fields": perf_data}
    )


class OperationTimer:
    """Context manager that logs start, completion and failure of an operation."""

    def __init__(self, logger: logging.Logger, operation: str, **context):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.start_time = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.logger.debug(f"Starting: {self.operation}", extra={"extra_fields": self.context})
        return self

    def __exit__(self, exc_type, exc_value, exc_traceback):
        duration = time.perf_counter() - self.start_time
        if exc_type is None:
            log_performance(self.logger, self.operation, duration, self.context)
        else:
            log_error(
                self.logger,
                exc_value,
                context={**self.context, "operation": self.operation, "duration": duration},
                level=logging.WARNING,
            )
        return False
