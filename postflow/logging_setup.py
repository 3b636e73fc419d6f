from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

STRUCTURED_FIELDS = (
    "role",
    "service",
    "run_id",
    "tenant_id",
    "content_id",
    "outbox_job_id",
    "job_type",
    "last_error_code",
    "retry_classification",
    "did_work",
    "reclaimed",
    "claims_total",
    "errors_total",
    "claim_lease_seconds",
    "storage",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key in STRUCTURED_FIELDS:
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
    root_logger.setLevel(logging.INFO)
