"""Logging for the booking core API and its Celery workers.

Everything logs under the `booking_core` logger tree. Production emits one
JSON object per line; other environments a readable line. Both carry the
request ID of the HTTP request (or "-" in workers and at startup).
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from booking_core.config import get_settings

ROOT_LOGGER = "booking_core"

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_configured: Optional[logging.Logger] = None

# Attributes every LogRecord has; anything else arrived through `extra=`
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "request_id",
    "extra_fields",
}

# Third-party loggers and the level they are held at outside debug mode
_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "stripe": logging.WARNING,
    "celery.app.trace": logging.INFO,
}


class RequestIdFilter(logging.Filter):
    """Stamp `record.request_id` from the current context."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = request_id_var.get() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shipping in production."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        payload.update(getattr(record, "extra_fields", None) or {})
        payload.update(
            {k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS}
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class StandardFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(
            fmt="%(asctime)s %(levelname)-7s %(name)s [%(request_id)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging() -> logging.Logger:
    """Configure the `booking_core` logger tree once per process."""
    global _configured
    if _configured is not None:
        return _configured

    settings = get_settings()
    level = getattr(logging, settings.log_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(JSONFormatter() if settings.is_production else StandardFormatter())

    logger = logging.getLogger(ROOT_LOGGER)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(logging.DEBUG if settings.debug else quiet_level)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database.echo else logging.WARNING
    )

    _configured = logger
    logger.info(
        f"Logging configured: level={settings.log_level}, "
        f"environment={settings.environment.value}, "
        f"format={'json' if settings.is_production else 'text'}"
    )
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger under the `booking_core` tree, e.g. `get_logger("http")`."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def log_request(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    **kwargs: Any,
) -> None:
    """Access log line for one HTTP request."""
    get_logger("http").info(
        f"{method} {path} - {status_code} - {duration_ms:.2f}ms",
        extra={
            "extra_fields": {
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
                **kwargs,
            }
        },
    )


def log_error(
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
    **kwargs: Any,
) -> None:
    """Log an unexpected error with its traceback and structured context."""
    get_logger("error").error(
        f"{type(error).__name__}: {error}",
        exc_info=error,
        extra={
            "extra_fields": {
                "error_type": type(error).__name__,
                "error_message": str(error),
                "context": context or {},
                **kwargs,
            }
        },
    )
