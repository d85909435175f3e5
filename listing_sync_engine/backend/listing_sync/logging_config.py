# backend/listing_sync/logging_config.py
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

from .config import Settings, settings as default_settings
from .middleware.request_id import get_request_id

# extra={...} keys copied onto the JSON line. Sync code tags every line with
# run/provider/scope so one run can be followed across concurrent jobs.
SYNC_EXTRAS = ("run_id", "provider", "scope", "sync_type", "property_id", "external_id")
HTTP_EXTRAS = ("event", "method", "path", "status_code", "latency_ms")


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line: ts, level, logger, message, request_id when
    inside an HTTP request, exc_info, and any sync/http extras set on the record.
    """

    extras: tuple[str, ...] = SYNC_EXTRAS + HTTP_EXTRAS

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        rid = get_request_id()
        if rid:
            payload["request_id"] = rid

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        for k in self.extras:
            v = getattr(record, k, None)
            if v is not None:
                payload[k] = v

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(stream=None, *, cfg: Optional[Settings] = None) -> None:
    """
    Root logger -> JSON lines on stream (stdout by default; the CLI passes
    stderr so stdout stays machine-readable). Levels come from Settings
    (LOG_LEVEL, HTTP_LOG_LEVEL, SQL_LOG_LEVEL).
    """
    cfg = cfg or default_settings
    level = (cfg.log_level or "INFO").upper()

    root = logging.getLogger()
    root.setLevel(level)

    # uvicorn --reload and repeated CLI calls would otherwise stack handlers
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(level)
    logging.getLogger("httpx").setLevel((cfg.http_log_level or "WARNING").upper())
    logging.getLogger("sqlalchemy.engine").setLevel((cfg.sql_log_level or "WARNING").upper())
