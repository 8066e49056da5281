"""Tests for structured logging configuration."""

import json
import logging
import sys
from unittest.mock import patch

import pytest

from bucketlimit.backends import InMemoryRateLimiter
from bucketlimit.core.logging import (
    ContextFilter,
    JSONFormatter,
    get_log_context,
    get_logger,
    get_logging_config,
    setup_logging,
)
from bucketlimit.models import LimiterOptions


def _record(msg="Test message", **extra):
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Test JSON formatter for structured logging."""

    def test_basic_json_format(self):
        data = json.loads(JSONFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "Test message"
        assert "timestamp" in data
        assert data["source"]["file"] == "test.py"
        assert data["source"]["line"] == 1

    def test_context_fields_promoted(self):
        record = _record(
            "token granted",
            resource_name="api",
            account_id="acct-1",
            backend="redis",
            allowed=True,
            tokens_before=3.0,
            tokens_after=2.0,
        )
        data = json.loads(JSONFormatter().format(record))

        assert data["resource_name"] == "api"
        assert data["account_id"] == "acct-1"
        assert data["backend"] == "redis"
        assert data["allowed"] is True
        assert data["tokens_before"] == 3.0
        assert data["tokens_after"] == 2.0
        assert "extra" not in data

    def test_unknown_fields_go_to_extra(self):
        data = json.loads(JSONFormatter().format(_record(tokens_filled=4.5)))
        assert data["extra"] == {"tokens_filled": 4.5}

    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                name="test",
                level=logging.ERROR,
                pathname="test.py",
                lineno=1,
                msg="failed",
                args=(),
                exc_info=sys.exc_info(),
            )
        data = json.loads(JSONFormatter().format(record))
        assert any("ValueError: boom" in line for line in data["exception"])


class TestContextFilter:
    """Test context defaults on records."""

    def test_fills_missing_fields(self):
        record = _record()
        assert ContextFilter().filter(record) is True
        assert record.resource_name is None
        assert record.backend is None

    def test_keeps_existing_fields(self):
        record = _record(resource_name="api")
        ContextFilter().filter(record)
        assert record.resource_name == "api"


class TestLoggingConfig:
    """Test dictConfig generation."""

    @pytest.mark.parametrize(
        "log_format,expected",
        [("text", "standard"), ("structured", "structured"), ("json", "json")],
    )
    def test_formatter_selection(self, log_format, expected):
        with patch("bucketlimit.core.logging.settings") as mock_settings:
            mock_settings.log_format = log_format
            mock_settings.log_level = "debug"
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == expected
        assert config["handlers"]["console"]["level"] == "DEBUG"
        assert config["loggers"]["bucketlimit"]["level"] == "DEBUG"

    def test_setup_logging_applies_config(self):
        with patch("bucketlimit.core.logging.settings") as mock_settings:
            mock_settings.log_format = "json"
            mock_settings.log_level = "WARNING"
            setup_logging()

        logger = logging.getLogger("bucketlimit")
        assert logger.level == logging.WARNING
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)
        logger.handlers.clear()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)


class TestLogContext:
    """Test log context helpers."""

    def test_drops_none_values(self):
        context = get_log_context("api", None, backend="memory", allowed=False, duration_ms=None)
        assert context == {"resource_name": "api", "backend": "memory", "allowed": False}

    def test_get_logger_name(self):
        assert get_logger("bucketlimit.test").name == "bucketlimit.test"


class TestDecisionTrace:
    """Token decisions are traced at DEBUG with bucket state."""

    @pytest.mark.asyncio
    async def test_memory_decision_logged(self, caplog, clock):
        limiter = InMemoryRateLimiter(LimiterOptions(clock=clock))
        await limiter.set_limit("api", "acct-1", 1, 1.0)

        with caplog.at_level(logging.DEBUG, logger="bucketlimit"):
            await limiter.get_token("api", "acct-1")
            await limiter.get_token("api", "acct-1")

        granted, denied = [r for r in caplog.records if r.name == "bucketlimit.backends.memory"]
        assert granted.getMessage() == "token granted"
        assert granted.tokens_before == 1.0
        assert granted.tokens_after == 0.0
        assert denied.getMessage() == "token denied"
        assert denied.allowed is False
        assert denied.resource_name == "api"
