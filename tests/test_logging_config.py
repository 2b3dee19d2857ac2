"""
Tests for logging setup.
"""

import json
import logging

from funnel_lab.logging_config import FunnelJsonFormatter, SanitizingFilter, setup_logging


class TestLoggingSetup:
    """Test root logger configuration."""

    def setup_method(self):
        self.root = logging.getLogger()
        self.saved_handlers = list(self.root.handlers)
        self.saved_level = self.root.level

    def teardown_method(self):
        self.root.handlers[:] = self.saved_handlers
        self.root.setLevel(self.saved_level)

    def test_level_applied(self):
        setup_logging("debug")
        assert self.root.level == logging.DEBUG
        assert len(self.root.handlers) == 1

    def test_noisy_loggers_quietened(self):
        setup_logging("DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("openai").level == logging.WARNING

    def test_json_format_selected(self):
        setup_logging("INFO", json_format=True)
        assert isinstance(self.root.handlers[0].formatter, FunnelJsonFormatter)

    def test_json_output_fields(self):
        formatter = FunnelJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
        record = logging.LogRecord("funnel_lab.core.cache", logging.INFO, __file__, 1, "hit %s", ("k",), None)

        entry = json.loads(formatter.format(record))

        assert entry["message"] == "hit k"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "funnel_lab.core.cache"
        assert "timestamp" in entry


class TestSanitizingFilter:
    """Test newline flattening."""

    def test_newlines_removed_from_message_and_args(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "a\nb %s", ("c\r\nd",), None)
        SanitizingFilter().filter(record)
        assert record.getMessage() == "a b c d"
