"""
Logging configuration for the Studio Booking Engine.

Everything goes through ``logging.config.dictConfig``. Booking operations are
additionally written to the ``studio_booking_engine.business`` logger and
authorization failures to ``studio_booking_engine.security`` so they can be
shipped to separate sinks.
"""

import json
import logging
import logging.config
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import get_settings

BUSINESS_LOGGER = "studio_booking_engine.business"
SECURITY_LOGGER = "studio_booking_engine.security"

# Library loggers kept quieter than the application
LIBRARY_LEVELS = {
    "uvicorn": "INFO",
    "uvicorn.access": "INFO",
    "fastapi": "INFO",
    "sqlalchemy.engine": "WARNING",
    "sqlalchemy.pool": "WARNING",
    "redis": "WARNING",
    "celery": "INFO",
    "httpx": "WARNING",
}

_RESERVED_RECORD_FIELDS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "request_id"}


def _rotating_file_handler(filename: str, level: str, formatter: str, backups: int) -> Dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": formatter,
        "filename": filename,
        "maxBytes": 10 * 1024 * 1024,
        "backupCount": backups,
        "filters": ["request_id", "sensitive_data"],
    }


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    enable_json_logging: bool = False
) -> None:
    """
    Configure console (and optional rotating file) logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        enable_json_logging: Emit one JSON object per line instead of text
    """
    settings = get_settings()
    formatter = "json" if enable_json_logging else "detailed"

    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": formatter,
            "stream": sys.stdout,
            "filters": ["request_id", "sensitive_data"],
        }
    }
    app_handlers: List[str] = ["console"]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = _rotating_file_handler(log_file, log_level, formatter, backups=5)
        app_handlers.append("file")

    library_handlers = list(app_handlers)

    if settings.environment == "production":
        error_file = log_file.replace(".log", "_errors.log") if log_file else "logs/errors.log"
        Path(error_file).parent.mkdir(parents=True, exist_ok=True)
        handlers["error_file"] = _rotating_file_handler(error_file, "ERROR", formatter, backups=10)
        app_handlers.append("error_file")

    loggers: Dict[str, Dict[str, Any]] = {
        "studio_booking_engine": {
            "level": log_level,
            "handlers": app_handlers,
            "propagate": False,
        }
    }
    for name, level in LIBRARY_LEVELS.items():
        loggers[name] = {"level": level, "handlers": library_handlers, "propagate": False}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "detailed": {
                "format": "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d [%(request_id)s] %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {
                "()": "studio_booking_engine.utils.logging_config.JSONFormatter",
            },
        },
        "filters": {
            "request_id": {"()": "studio_booking_engine.utils.logging_config.RequestIDFilter"},
            "sensitive_data": {"()": "studio_booking_engine.utils.logging_config.SensitiveDataFilter"},
        },
        "handlers": handlers,
        "loggers": loggers,
        "root": {"level": log_level, "handlers": library_handlers},
    })

    def handle_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logging.getLogger("studio_booking_engine.exceptions").error(
            "Uncaught exception",
            exc_info=(exc_type, exc_value, exc_traceback),
            extra={"exception_type": exc_type.__name__}
        )

    sys.excepthook = handle_exception


class RequestIDFilter(logging.Filter):
    """Stamps records with the id of the HTTP request being served."""

    def filter(self, record):
        if not getattr(record, "request_id", None):
            from ..middleware.logging import request_id_var
            record.request_id = request_id_var.get()
        return True


class SensitiveDataFilter(logging.Filter):
    """Masks bearer tokens, secrets and email addresses before records are emitted."""

    SENSITIVE_KEYS = ("password", "token", "secret", "authorization", "cookie", "api_key")

    _JWT = re.compile(r"\beyJ[\w-]+\.[\w-]+\.[\w-]+")
    _EMAIL = re.compile(r"\b[\w.%+-]+@[\w.-]+\.[A-Za-z]{2,}\b")

    def filter(self, record):
        if isinstance(record.msg, str):
            record.msg = self._sanitize(record.msg)
        for key, value in list(record.__dict__.items()):
            if key in _RESERVED_RECORD_FIELDS:
                continue
            if self._is_sensitive(key):
                setattr(record, key, "***MASKED***")
            elif isinstance(value, (str, dict, list)):
                setattr(record, key, self._sanitize(value))
        return True

    def _is_sensitive(self, key: str) -> bool:
        key = key.lower()
        return any(marker in key for marker in self.SENSITIVE_KEYS)

    def _sanitize(self, data):
        if isinstance(data, str):
            return self._EMAIL.sub("***EMAIL***", self._JWT.sub("***TOKEN***", data))
        if isinstance(data, dict):
            return {
                key: "***MASKED***" if self._is_sensitive(str(key)) else self._sanitize(value)
                for key, value in data.items()
            }
        if isinstance(data, list):
            return [self._sanitize(item) for item in data]
        return data


class JSONFormatter(logging.Formatter):
    """One JSON document per record; ``extra`` fields are nested under "extra"."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
            "request_id": getattr(record, "request_id", None),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_RECORD_FIELDS
        }
        if extra:
            log_entry["extra"] = extra

        return json.dumps(log_entry, default=str, ensure_ascii=False)


def log_business_event(event_type: str, details: Dict[str, Any], user_id: Optional[str] = None):
    """Log a committed booking operation or other notable domain occurrence."""
    logging.getLogger(BUSINESS_LOGGER).info(
        f"Business event: {event_type}",
        extra={
            "event_type": event_type,
            "business_event": True,
            "user_id": user_id,
            **details
        }
    )


def log_security_event(event_type: str, details: Dict[str, Any], severity: str = "WARNING"):
    """Log authentication and authorization failures."""
    logger = logging.getLogger(SECURITY_LOGGER)
    log_method = getattr(logger, severity.lower(), logger.warning)
    log_method(
        f"Security event: {event_type}",
        extra={
            "event_type": event_type,
            "security_event": True,
            "severity": severity,
            **details
        }
    )
