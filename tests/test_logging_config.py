"""Tests for structured logging configuration."""

from __future__ import annotations

import json
import logging

from core.logging_config import JSONFormatter, bind_plan_logger, get_logger, setup_logging


def test_json_formatter_outputs_valid_json():
    formatter = JSONFormatter()
    record = logging.LogRecord(
        name="test", level=logging.INFO, pathname="test.py",
        lineno=1, msg="hello %s", args=("world",), exc_info=None
    )
    result = formatter.format(record)
    parsed = json.loads(result)
    assert parsed["message"] == "hello world"
    assert parsed["level"] == "INFO"
    assert parsed["logger"] == "test"
    assert "timestamp" in parsed


def test_json_formatter_includes_exception():
    formatter = JSONFormatter()
    try:
        raise ValueError("test error")
    except ValueError:
        import sys
        exc_info = sys.exc_info()
    record = logging.LogRecord(
        name="test", level=logging.ERROR, pathname="test.py",
        lineno=1, msg="fail", args=(), exc_info=exc_info
    )
    result = formatter.format(record)
    parsed = json.loads(result)
    assert parsed["exception"]["type"] == "ValueError"
    assert parsed["exception"]["message"] == "test error"


def test_get_logger_returns_named_logger():
    log = get_logger("my.module")
    assert log.name == "my.module"
    assert isinstance(log, logging.Logger)


def test_setup_logging_idempotent():
    root = logging.getLogger()
    initial_count = len(root.handlers)
    setup_logging()
    setup_logging()
    # Should not add duplicate handlers
    assert len(root.handlers) <= initial_count + 1


def test_json_formatter_collects_ctx_fields():
    formatter = JSONFormatter()
    record = logging.LogRecord(
        name="test", level=logging.WARNING, pathname="test.py",
        lineno=1, msg="plan_invariant_violation", args=(), exc_info=None
    )
    record.ctx_plan_id = 7
    record.ctx_failure_count = 2
    record.unrelated = "ignored"
    parsed = json.loads(formatter.format(record))
    assert parsed["context"] == {"ctx_plan_id": 7, "ctx_failure_count": 2}


def test_bind_plan_logger_stamps_identifiers(caplog):
    log = bind_plan_logger(plan_id=42, user_id=3, name="tests.bound")
    with caplog.at_level(logging.INFO, logger="tests.bound"):
        log.info("plan_normalized", extra={"ctx_was_normalized": True})
    record = caplog.records[-1]
    assert record.ctx_plan_id == 42
    assert record.ctx_user_id == 3
    assert record.ctx_was_normalized is True


def test_bind_plan_logger_skips_missing_ids():
    log = bind_plan_logger(plan_id=None, user_id=None)
    assert log.extra == {}
    assert log.logger.name == "core.services.plan_normalizer"
