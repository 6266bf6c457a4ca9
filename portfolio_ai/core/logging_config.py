"""Structured logging configuration with context management."""

import logging
import logging.config
import json
import uuid
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variables for request/job tracking
request_context: ContextVar[Dict[str, Any]] = ContextVar('request_context', default={})

CONTEXT_FIELDS = [
    'request_id', 'job_id', 'operation', 'portfolio_id', 'project_id',
    'client_ip', 'method', 'url', 'status_code', 'duration_ms'
]

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName',
    'created', 'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'message', 'taskName'
}


class ContextFilter(logging.Filter):
    """Logging filter that adds context information to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = request_context.get({})

        for key, value in context.items():
            if not hasattr(record, key):
                setattr(record, key, value)

        if not hasattr(record, 'request_id'):
            record.request_id = 'unknown'
        if not hasattr(record, 'job_id'):
            record.job_id = '-'
        if not hasattr(record, 'operation'):
            record.operation = 'unknown'

        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': self.formatException(record.exc_info)
            }

        extra_fields = {}
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key in CONTEXT_FIELDS or key.startswith('_'):
                continue
            extra_fields[key] = value

        if extra_fields:
            log_data['extra'] = extra_fields

        return json.dumps(log_data, default=str)


class ContextManager:
    """Manages logging context for requests and analysis jobs."""

    @staticmethod
    def set_context(**kwargs) -> None:
        """Set context variables for the current task."""
        current_context = dict(request_context.get({}))
        current_context.update(kwargs)
        request_context.set(current_context)

    @staticmethod
    def get_context() -> Dict[str, Any]:
        return request_context.get({})

    @staticmethod
    def clear_context() -> None:
        request_context.set({})

    @staticmethod
    def generate_request_id() -> str:
        return str(uuid.uuid4())


# Third-party loggers and the level they are held at; None follows log_level
LOGGER_LEVELS = {
    '': None,
    'portfolio_ai': None,
    'uvicorn': 'INFO',
    'sqlalchemy': 'WARNING',
    'httpx': 'WARNING',
    'openai': 'WARNING',
}

TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s [job=%(job_id)s] %(message)s"


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None
) -> None:
    """
    Configure console (and optionally rotating file) logging.

    Args:
        log_level: Level for the root and portfolio_ai loggers
        log_format: "json" for JSONFormatter, anything else for plain text
        log_file: Optional path for a rotating log file
    """
    if log_format.lower() == "json":
        formatter = {'()': JSONFormatter}
    else:
        formatter = {'format': TEXT_FORMAT}

    handlers = {
        'console': {
            'class': 'logging.StreamHandler',
            'level': log_level,
            'formatter': 'structured',
            'filters': ['context'],
            'stream': 'ext://sys.stdout'
        }
    }
    if log_file:
        handlers['file'] = {
            'class': 'logging.handlers.RotatingFileHandler',
            'level': log_level,
            'formatter': 'structured',
            'filters': ['context'],
            'filename': log_file,
            'maxBytes': 10 * 1024 * 1024,
            'backupCount': 5
        }

    logging.config.dictConfig({
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {'structured': formatter},
        'filters': {'context': {'()': ContextFilter}},
        'handlers': handlers,
        'loggers': {
            name: {
                'level': level or log_level,
                'handlers': list(handlers),
                'propagate': False
            }
            for name, level in LOGGER_LEVELS.items()
        }
    })


class StructuredLogger:
    """Logger wrapper that attaches keyword arguments as structured fields."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _log_with_context(self, level: int, message: str, exc_info: bool = False, **kwargs) -> None:
        extra = {}
        for key, value in {**ContextManager.get_context(), **kwargs}.items():
            # LogRecord refuses to overwrite its own attributes
            extra[f"ctx_{key}" if key in _RESERVED_ATTRS else key] = value

        self.logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **kwargs) -> None:
        self._log_with_context(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        self._log_with_context(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log_with_context(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        self._log_with_context(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs) -> None:
        self._log_with_context(logging.ERROR, message, exc_info=True, **kwargs)

    def critical(self, message: str, **kwargs) -> None:
        self._log_with_context(logging.CRITICAL, message, **kwargs)

    def operation_start(self, operation: str, **kwargs) -> None:
        """Log start of an operation."""
        ContextManager.set_context(operation=operation)
        self.info(f"Starting operation: {operation}", operation_status="started", **kwargs)

    def operation_end(self, operation: str, duration_ms: Optional[float] = None, **kwargs) -> None:
        """Log end of an operation."""
        log_kwargs = {"operation_status": "completed", **kwargs}
        if duration_ms is not None:
            log_kwargs["duration_ms"] = duration_ms
        self.info(f"Completed operation: {operation}", **log_kwargs)

    def operation_error(self, operation: str, error: Exception, **kwargs) -> None:
        """Log operation error."""
        self.error(
            f"Operation failed: {operation}",
            operation_status="failed",
            error_type=type(error).__name__,
            error_message=str(error),
            **kwargs
        )


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name)
