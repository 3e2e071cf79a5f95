"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import json
import logging
import sys
from io import StringIO

from bucketguard.core.config import LogSettings
from bucketguard.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    clear_request_id,
    configure_logging,
    set_request_id,
)


def _capture(name: str) -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger, stream


def test_sensitive_filter_redacts_store_credentials():
    logger, stream = _capture("test_redaction")

    logger.info(
        "rate_limit.configured",
        extra={
            "redis_password": "hunter2",
            "password": "s3cret",
            "store": "redis://cache.internal:6379/0",
        },
    )

    output = stream.getvalue()
    assert "hunter2" not in output
    assert "s3cret" not in output
    assert "[REDACTED]" in output
    assert "cache.internal" in output


def test_sensitive_filter_redacts_raw_forwarded_header():
    logger, stream = _capture("test_forwarded")

    logger.info(
        "rate_limit.debug",
        extra={"headers": {"x-forwarded-for": "203.0.113.5", "user-agent": "pytest"}},
    )

    output = stream.getvalue()
    assert "203.0.113.5" not in output
    assert "pytest" in output


def test_rate_limit_fields_pass_through():
    logger, stream = _capture("test_safe_fields")

    logger.warning(
        "rate_limit.denied",
        extra={"key_hash": "abc123", "available": 0.0, "required": 10.0, "retry_after_s": 10},
    )

    record = json.loads(stream.getvalue())
    assert record["message"] == "rate_limit.denied"
    assert record["level"] == "warning"
    assert record["retry_after_s"] == 10
    assert record["key_hash"] == "abc123"


def test_request_id_is_attached_from_context():
    logger, stream = _capture("test_request_id")

    set_request_id("req-42")
    try:
        logger.info("rate_limit.allowed")
    finally:
        clear_request_id()

    assert json.loads(stream.getvalue())["request_id"] == "req-42"


def test_configure_logging_installs_single_stdout_json_handler():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging(LogSettings(level="DEBUG", format="json"))

        assert len(root.handlers) == 1
        handler = root.handlers[0]
        assert isinstance(handler, logging.StreamHandler)
        assert handler.stream is sys.stdout
        assert isinstance(handler.formatter, JsonFormatter)
        assert root.level == logging.DEBUG
        assert logging.getLogger("redis").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
