"""
Unit tests for logging setup helpers.
"""

import json
import logging

from ailock.core.logging_config import (
    ConsoleFormatter, JSONFormatter, session_logger, filter_sensitive_data, truncate_large_data,
)


def make_record(message="Generation started", **extra_fields):
    record = logging.LogRecord("ailock.test", logging.INFO, __file__, 10, message, None, None)
    if extra_fields:
        record.extra_fields = extra_fields
    return record


class TestFormatters:
    """Tests for console and JSON output."""

    def test_json_hoists_correlation_ids(self):
        record = make_record(chunks_delivered=2, session_id="s-1", user_id="alice")
        data = json.loads(JSONFormatter(service="ailock-test").format(record))

        keys = list(data)
        assert keys.index("session_id") < keys.index("location") < keys.index("chunks_delivered")
        assert data["service"] == "ailock-test"
        assert data["user_id"] == "alice"
        assert data["chunks_delivered"] == 2

    def test_console_session_tag(self):
        formatter = ConsoleFormatter(colored=False)
        tagged = formatter.format(make_record(session_id="0123456789abcdef"))
        plain = formatter.format(make_record())
        assert "[01234567] Generation started" in tagged
        assert "[" not in plain.split("|")[-1]

    def test_console_color_does_not_leak(self):
        record = make_record()
        ConsoleFormatter(colored=True).format(record)
        assert record.levelname == "INFO"


class TestHelpers:
    """Tests for the adapter and payload helpers."""

    def test_session_logger_merges_fields(self, caplog):
        log = session_logger(logging.getLogger("ailock.test"), "s-1", "alice")
        with caplog.at_level(logging.INFO, logger="ailock.test"):
            log.info("hello", extra={"extra_fields": {"attempt": 2}})
        fields = caplog.records[-1].extra_fields
        assert fields == {"session_id": "s-1", "user_id": "alice", "attempt": 2}

    def test_filter_sensitive_data(self):
        data = {"token": "abc", "nested": [{"api_key": "k", "mode": "creator"}]}
        assert filter_sensitive_data(data) == {
            "token": "***FILTERED***",
            "nested": [{"api_key": "***FILTERED***", "mode": "creator"}],
        }

    def test_truncate(self):
        assert truncate_large_data("short") == "short"
        assert truncate_large_data("x" * 20, max_length=5).startswith("xxxxx... (truncated, total length: 20)")
