from __future__ import annotations

import json
import logging
import os
import sys
from datetime import UTC, datetime

# Structured keys passed through ``extra=`` that end up in the JSON line.
CONTEXT_KEYS = (
    "role",
    "service",
    "run_id",
    "worker",
    "message_id",
    "job_id",
    "status",
    "error_code",
    "retry_classification",
    "failure_reason",
    "latency_ms",
    "attempt",
    "detail",
    "did_work",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key in CONTEXT_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def configure_logging() -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
