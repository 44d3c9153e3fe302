"""
Logging setup for the fincore package.

Everything logs under the ``fincore`` logger. FINCORE_LOG_LEVEL picks the
level and FINCORE_JSON_LOGS=true switches the console output to one JSON
object per line. Services report through log_event and log_error so the
structured fields end up in the JSON payload.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

PACKAGE_LOGGER = "fincore"
TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

logger = logging.getLogger(PACKAGE_LOGGER)


class JSONFormatter(logging.Formatter):
    """Render a record and its ``extra_fields`` as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        payload.update(getattr(record, "extra_fields", {}))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _level_from_env() -> int:
    name = os.getenv("FINCORE_LOG_LEVEL", "INFO").upper()
    return getattr(logging, name, logging.INFO)


def configure_logging(level: Optional[int] = None, json_output: Optional[bool] = None) -> logging.Logger:
    """(Re)install the console handler on the package logger."""
    if level is None:
        level = _level_from_env()
    if json_output is None:
        json_output = os.getenv("FINCORE_JSON_LOGS", "false").lower() == "true"

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if json_output else logging.Formatter(TEXT_FORMAT))

    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


configure_logging()


def log_event(event_type: str, message: str, **fields: Any) -> None:
    """Log a domain event (match created, feedback recorded, ...)."""
    logger.info(message, extra={"extra_fields": {"type": "domain_event", "event_type": event_type, **fields}})


def log_error(
    error_type: str,
    message: str,
    context: Optional[Dict[str, Any]] = None,
    exception: Optional[BaseException] = None,
) -> None:
    """Log a failure; ``exception`` keeps its traceback even outside an except block."""
    fields = {"type": "error", "error_type": error_type, **(context or {})}
    exc_info = (type(exception), exception, exception.__traceback__) if exception is not None else None
    logger.error(message, exc_info=exc_info, extra={"extra_fields": fields})
