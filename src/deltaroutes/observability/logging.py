"""Structured JSON logging with correlation ID support.

One JSON object per line on stdout. Structured context goes through
``extra={"extra_fields": safe_log_context(...)}`` so every value is redacted.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from .correlation import get_correlation_id

SERVICE_NAME = "deltaroutes-booking"


class JsonFormatter(logging.Formatter):
    """JSON formatter that stamps service name and correlation ID."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "service": SERVICE_NAME,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_obj["correlationId"] = correlation_id

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            log_obj.update(extra_fields)

        return json.dumps(log_obj, default=str)


def _resolve_level() -> int:
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """Get a logger configured for JSON output."""
    logger = logging.getLogger(name)

    # Only configure once per logger name
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
        logger.setLevel(_resolve_level())
        logger.propagate = False

    return logger
