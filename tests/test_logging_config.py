"""Tests for structured logging configuration."""

import json
import logging

import structlog

from cli.logging_config import (
    MAX_VALUE_CHARS,
    _redact_sensitive,
    _truncate_long_values,
    setup_logging,
)


class TestLoggingConfig:
    """Test structlog setup modes."""

    def test_console_mode(self, capsys):
        """Console mode renders to stderr."""
        setup_logging(json_mode=False, level="DEBUG")
        structlog.get_logger("memkeep.test").info("console message", key="value")
        captured = capsys.readouterr()
        assert "console message" in captured.err

    def test_json_mode(self, capsys):
        """JSON mode produces parseable JSON, foreign stdlib records included."""
        setup_logging(json_mode=True, level="DEBUG")
        logging.getLogger("test_json").info("json test")
        line = capsys.readouterr().err.strip().splitlines()[-1]
        assert json.loads(line)["event"] == "json test"

    def test_level_filtering(self):
        setup_logging(json_mode=False, level="WARNING")
        assert logging.getLogger().level == logging.WARNING

    def test_default_level_is_info(self):
        setup_logging()
        assert logging.getLogger().level == logging.INFO

    def test_scheduler_logger_quieted(self):
        setup_logging(level="DEBUG")
        assert logging.getLogger("apscheduler").level == logging.WARNING


class TestRedaction:
    def test_api_key(self):
        out = _redact_sensitive(None, None, {"event": "x", "error": "key sk-abcdef" + "z" * 30})
        assert "zzzz" not in out["error"]
        assert "sk-abcdef...REDACTED" in out["error"]

    def test_international_phone(self):
        out = _redact_sensitive(None, None, {"event": "x", "candidate": "Call me on +1 415 555 0100"})
        assert out["candidate"] == "Call me on REDACTED-phone"

    def test_us_phone(self):
        out = _redact_sensitive(None, None, {"event": "x", "content": "Phone is (555) 123-4567"})
        assert out["content"] == "Phone is REDACTED-phone"

    def test_email(self):
        out = _redact_sensitive(None, None, {"event": "saved", "content": "Email is ana@example.com"})
        assert out["content"] == "Email is REDACTED@email"

    def test_timestamps_untouched(self):
        out = _redact_sensitive(None, None, {"event": "x", "timestamp": "2026-06-01T12:00:00"})
        assert out["timestamp"] == "2026-06-01T12:00:00"

    def test_aware_timestamps_untouched(self):
        stamp = "2026-06-01T12:00:00+00:00"
        assert _redact_sensitive(None, None, {"event": "x", "ts": stamp})["ts"] == stamp

    def test_non_strings_untouched(self):
        out = _redact_sensitive(None, None, {"event": "x", "count": 3})
        assert out["count"] == 3


class TestTruncation:
    def test_long_values_truncated(self):
        out = _truncate_long_values(None, None, {"event": "x", "response": "r" * 1000})
        assert out["response"] == "r" * MAX_VALUE_CHARS + "...(truncated)"

    def test_event_not_truncated(self):
        event = "e" * 1000
        assert _truncate_long_values(None, None, {"event": event})["event"] == event
