"""
Logging configuration for structured JSON logging.

JSON lines are the default so request logs (session id, model, error kind,
latency) can be indexed by the log pipeline; a readable format is used when
ENV is set to development or LOG_FORMAT_JSON is false.
"""

import logging
import os
import sys
from typing import Any, Optional

from pythonjsonlogger import jsonlogger

from constants import LOG_FORMAT_JSON, LOG_LEVEL_DEVELOPMENT, LOG_LEVEL_PRODUCTION

READABLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = "%(timestamp)s %(level)s %(logger)s %(message)s"


class ContextualJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that always emits timestamp, level and logger fields.

    Fields passed through ``extra`` (session_id, event_type, ...) are merged
    into the record by the base formatter.
    """

    def __init__(self, *args, rename_fields: Optional[dict] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.rename_fields = rename_fields or {}

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = self.formatTime(record, self.datefmt)
        if not log_record.get("level"):
            log_record["level"] = record.levelname
        if not log_record.get("logger"):
            log_record["logger"] = record.name

        for old_name, new_name in self.rename_fields.items():
            if old_name in log_record:
                log_record[new_name] = log_record.pop(old_name)


def _env_wants_json() -> bool:
    return os.getenv("LOG_FORMAT_JSON", str(LOG_FORMAT_JSON)).lower() in ("true", "1", "yes")


def _default_level() -> str:
    env = os.getenv("ENV", "production").lower()
    return LOG_LEVEL_DEVELOPMENT if env in ("dev", "development") else LOG_LEVEL_PRODUCTION


def setup_logging(use_json: Optional[bool] = None, log_level: Optional[str] = None) -> None:
    """
    Configure root logging with JSON or readable format.

    Args:
        use_json: If True, use JSON format. If False, use readable format.
                  If None, reads LOG_FORMAT_JSON from the environment.
        log_level: Logging level (e.g., "INFO", "DEBUG").
                   If None, DEBUG in development and INFO otherwise.
    """
    if use_json is None:
        use_json = _env_wants_json()
    if log_level is None:
        log_level = _default_level()

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    if use_json:
        formatter: logging.Formatter = ContextualJsonFormatter(
            JSON_FORMAT,
            rename_fields={
                "timestamp": "@timestamp",
                "level": "severity",
            },
        )
    else:
        formatter = logging.Formatter(READABLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper()))

    # aiohttp access logs duplicate the request events we log ourselves
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that adds contextual information to all log messages.

    Usage:
        log = StructuredLoggerAdapter(logging.getLogger(__name__), {
            "session_id": session_id,
            "model": "gemini-2.0-flash-001",
        })
        log.info_event("generation_completed", "Reply generated", latency_ms=840)
    """

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        extra = kwargs.get("extra", {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs

    def log_event(self, level: int, event_type: str, message: str, **context: Any) -> None:
        """
        Log a structured event with type and context.

        Args:
            level: Logging level (e.g., logging.INFO)
            event_type: Type of event (e.g., "turn_committed", "generation_failed")
            message: Human-readable message
            **context: Additional contextual key-value pairs
        """
        context["event_type"] = event_type
        self.log(level, message, extra=context)

    def info_event(self, event_type: str, message: str, **context: Any) -> None:
        self.log_event(logging.INFO, event_type, message, **context)

    def warning_event(self, event_type: str, message: str, **context: Any) -> None:
        self.log_event(logging.WARNING, event_type, message, **context)

    def debug_event(self, event_type: str, message: str, **context: Any) -> None:
        self.log_event(logging.DEBUG, event_type, message, **context)


def session_logger(logger: logging.Logger, session_id: str, **context: Any) -> StructuredLoggerAdapter:
    """Return an adapter that tags every record with the session id."""
    return StructuredLoggerAdapter(logger, {"session_id": session_id, **context})
