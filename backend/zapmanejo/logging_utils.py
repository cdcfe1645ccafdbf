"""
Structured JSON logging utilities.
"""
import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict

LOGGER_NAME = "zapmanejo"

_REQUEST_FIELDS = ("request_id", "method", "path", "status", "latency_ms", "user_id", "client", "returned_items")
_WEBHOOK_FIELDS = ("wa_message_id", "sender", "result")


class JSONFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "ts": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
        }

        for field in _REQUEST_FIELDS + _WEBHOOK_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        message = record.getMessage()
        if message:
            log_data["message"] = message

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Set up structured JSON logging for the `zapmanejo` logger tree.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)

    logger.propagate = False

    return logger
