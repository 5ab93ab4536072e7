"""Counters, path normalization and structured log output."""

import json
import logging
import sys

from coredna.core.logging import JsonFormatter, PrettyFormatter, RequestIdFilter, latency_bucket_ms, request_id_ctx_var
from coredna.core.metrics import Counter, normalize_path


def test_counter_export_with_labels():
    counter = Counter("coredna_test_total", ["category", "outcome"])
    counter.inc({"category": "image", "outcome": "success"})
    counter.inc({"category": "image", "outcome": "success"}, amount=2)

    assert counter.value({"category": "image", "outcome": "success"}) == 3.0
    lines = counter.export()
    assert lines[0] == "# TYPE coredna_test_total counter"
    assert 'coredna_test_total{category="image",outcome="success"} 3.0' in lines


def test_normalize_path_replaces_ids():
    assert normalize_path("/v1/credits/12345") == "/v1/credits/:id"
    assert normalize_path("/v1/state/3f2b8c1e-1111-2222-3333-444455556666/export") == "/v1/state/:id/export"
    assert normalize_path("/v1/providers/video") == "/v1/providers/video"


def test_latency_buckets():
    assert latency_bucket_ms(None) == "unknown"
    assert latency_bucket_ms(5) == "<10ms"
    assert latency_bucket_ms(2500) == ">=1000ms"


def test_json_formatter_includes_structured_keys():
    record = logging.LogRecord("coredna", logging.INFO, __file__, 1, "[quota] BLOCK", None, None)
    record.request_id = "rid-1"
    record.user_id = "u1"
    record.category = "video"
    record.limit = 5

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "[quota] BLOCK"
    assert payload["request_id"] == "rid-1"
    assert payload["user_id"] == "u1"
    assert payload["limit"] == 5
    assert "engine" not in payload


def test_pretty_formatter_appends_context():
    record = logging.LogRecord("coredna.dispatch", logging.WARNING, __file__, 1, "[dispatch] fallback", None, None)
    record.request_id = None
    record.engine = "unsplash-free"
    record.error_code = "no_provider_configured"

    line = PrettyFormatter().format(record)

    assert line.endswith("WARNING [dispatch] fallback engine=unsplash-free error_code=no_provider_configured")
    assert "[rid=" not in line


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("adapter exploded")
    except RuntimeError:
        record = logging.LogRecord("coredna", logging.ERROR, __file__, 1, "[dispatch] unexpected batch error", None, sys.exc_info())

    payload = json.loads(JsonFormatter().format(record))

    assert "RuntimeError: adapter exploded" in payload["exception"]


def test_request_id_filter_reads_context():
    record = logging.LogRecord("coredna", logging.INFO, __file__, 1, "request.complete", None, None)
    token = request_id_ctx_var.set("rid-ctx")
    try:
        assert RequestIdFilter().filter(record) is True
    finally:
        request_id_ctx_var.reset(token)
    assert record.request_id == "rid-ctx"
