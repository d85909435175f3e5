# backend/tests/test_logging_config.py
from __future__ import annotations

import io
import json
import logging

import pytest

from listing_sync.config import Settings
from listing_sync.logging_config import JsonFormatter, configure_logging
from listing_sync.middleware.request_id import request_id_ctx


@pytest.fixture()
def root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)


def _record(**extra) -> logging.LogRecord:
    rec = logging.LogRecord("listing_sync.sync", logging.WARNING, __file__, 1, "job %s failed", ("x",), None)
    for k, v in extra.items():
        setattr(rec, k, v)
    return rec


def test_json_line_carries_sync_context():
    line = JsonFormatter().format(_record(run_id=7, provider="zillow", scope="Orlando,FL", sync_type=None, org_id=3))
    payload = json.loads(line)

    assert payload["message"] == "job x failed"
    assert payload["level"] == "WARNING"
    assert (payload["run_id"], payload["provider"], payload["scope"]) == (7, "zillow", "Orlando,FL")
    # unset extras and unknown keys stay off the line
    assert "sync_type" not in payload
    assert "org_id" not in payload
    assert "request_id" not in payload


def test_request_id_is_added_inside_a_request():
    token = request_id_ctx.set("req-42")
    try:
        payload = json.loads(JsonFormatter().format(_record()))
    finally:
        request_id_ctx.reset(token)

    assert payload["request_id"] == "req-42"


def test_configure_logging_takes_levels_from_settings(root_logger):
    out = io.StringIO()
    cfg = Settings(log_level="warning", http_log_level="error", sql_log_level="info")

    configure_logging(out, cfg=cfg)
    logging.getLogger("listing_sync.test").info("hidden")
    logging.getLogger("listing_sync.test").warning("shown", extra={"provider": "simplyrets"})

    lines = [json.loads(s) for s in out.getvalue().splitlines()]
    assert [(l["message"], l.get("provider")) for l in lines] == [("shown", "simplyrets")]
    assert len(root_logger.handlers) == 1
    assert logging.getLogger("httpx").level == logging.ERROR
    assert logging.getLogger("sqlalchemy.engine").level == logging.INFO
