"""Tests for structured logging and request_id propagation."""

import json
import logging

from fastapi.testclient import TestClient

from rewire.core.logging import (
    JsonFormatter,
    PrettyFormatter,
    latency_bucket_ms,
    log_event,
    request_id_ctx_var,
    user_id_ctx_var,
)
from rewire.main import app


def test_request_id_in_response_and_logs(caplog):
    client = TestClient(app)
    with caplog.at_level(logging.INFO, logger="rewire"):
        response = client.get("/healthz")
    rid = response.headers.get("x-request-id")
    assert rid
    records = [r for r in caplog.records if getattr(r, "request_id", None) == rid]
    assert records, "Expected logs to contain request_id from response"
    assert len({r.request_id for r in records}) == 1


def test_request_id_in_error_response():
    client = TestClient(app)
    response = client.post("/v1/meter/calculate", json={"userId": ""})
    rid = response.headers.get("x-request-id")
    assert response.status_code == 400
    assert rid
    assert response.json()["error"]["request_id"] == rid


def test_log_event_uses_context_request_id(caplog):
    token = request_id_ctx_var.set("rid-ctx")
    try:
        with caplog.at_level(logging.INFO, logger="rewire"):
            log_event("info", "meter.test", request_id=None, user_id="u1", extra={"streak": 3})
    finally:
        request_id_ctx_var.reset(token)

    record = next(r for r in caplog.records if r.getMessage() == "meter.test")
    assert record.request_id == "rid-ctx"
    assert record.user_id == "u1"
    assert record.streak == "3"


def test_log_event_truncates_long_values(caplog):
    with caplog.at_level(logging.INFO, logger="rewire"):
        log_event("info", "meter.long", request_id="r1", extra={"blob": "x" * 2000})
    record = next(r for r in caplog.records if r.getMessage() == "meter.long")
    assert record.blob.endswith("...<truncated>")
    assert len(record.blob) < 600


def _record(**extra):
    record = logging.LogRecord("rewire", logging.INFO, __file__, 1, "meter.computed", (), None)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


def test_json_formatter_includes_structured_fields():
    payload = json.loads(JsonFormatter().format(_record(request_id="r1", progress=55.3)))
    assert payload["message"] == "meter.computed"
    assert payload["request_id"] == "r1"
    assert payload["progress"] == 55.3
    assert payload["logger"] == "rewire"


def test_pretty_formatter():
    line = PrettyFormatter().format(_record(request_id="r2", streak=4))
    assert "[rewire]" in line
    assert "[rid=r2]" in line
    assert "streak=4" in line


def test_latency_buckets():
    assert latency_bucket_ms(None) == "unknown"
    assert latency_bucket_ms(5) == "<10ms"
    assert latency_bucket_ms(50) == "10-100ms"
    assert latency_bucket_ms(5000) == ">=1000ms"


def test_log_event_falls_back_to_bound_user(caplog):
    token = user_id_ctx_var.set("bound-user")
    try:
        with caplog.at_level(logging.INFO, logger="rewire"):
            log_event("info", "meter.bound", request_id="r3")
    finally:
        user_id_ctx_var.reset(token)

    record = next(r for r in caplog.records if r.getMessage() == "meter.bound")
    assert record.user_id == "bound-user"
