"""
Unit tests for the deduplicating error log.
"""

import os
import sqlite3
import tempfile
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from funnel_lab.core.error_log import MAX_MESSAGE_LENGTH, ErrorLog, fingerprint
from funnel_lab.storage.db import get_connection
from funnel_lab.storage.repository import fetch_error_logs, initialize_schema


class TestFingerprint:
    """Test masking of the variable parts of error messages."""

    def test_numbers_masked(self):
        assert fingerprint("timeout after 30s") == fingerprint("timeout after 31s")

    def test_request_ids_masked(self):
        assert fingerprint("failed req_abc123XYZ") == fingerprint("failed req_zzz999")

    def test_uuids_masked(self):
        a = "session 3f2b8c1e-9a4d-4e2f-8b7a-1c2d3e4f5a6b not found"
        b = "session 00000000-1111-2222-3333-444444444444 not found"
        assert fingerprint(a) == fingerprint(b)

    def test_timestamps_masked(self):
        assert fingerprint("at 2025-03-01T10:00:00Z") == fingerprint("at 2025-04-02T11:30:15.123+00:00")

    def test_static_text_distinguishes(self):
        assert fingerprint("connection refused") != fingerprint("connection reset")


class TestErrorLog:
    """Test error recording against a temporary database."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.now = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)
        self.error_log = ErrorLog(self.db_path, clock=lambda: self.now)

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_first_occurrence_opens_entry(self):
        assert self.error_log.record("ProviderError", "openai returned an error (status 500)",
                                     endpoint="/funnel-analysis", user_id="u") is True

        entries = fetch_error_logs(db_path=self.db_path)
        assert len(entries) == 1
        assert entries[0].frequency == 1
        assert entries[0].endpoint == "/funnel-analysis"
        assert entries[0].first_occurrence == entries[0].last_occurrence == self.now

    def test_same_failure_twice_bumps_frequency(self):
        self.error_log.record("ProviderError", "upstream failure")
        self.now += timedelta(minutes=5)
        self.error_log.record("ProviderError", "upstream failure")

        entries = fetch_error_logs(db_path=self.db_path)
        assert len(entries) == 1
        assert entries[0].frequency == 2
        assert entries[0].last_occurrence - entries[0].first_occurrence == timedelta(minutes=5)

    def test_variable_parts_deduplicate(self):
        self.error_log.record("ProviderError", "openai call timed out after 60s")
        self.error_log.record("ProviderError", "openai call timed out after 45s")

        entries = fetch_error_logs(db_path=self.db_path)
        assert len(entries) == 1
        assert entries[0].frequency == 2

    def test_distinct_messages_get_distinct_entries(self):
        self.error_log.record("ProviderError", "connection refused")
        self.error_log.record("ProviderError", "invalid api key")

        assert len(fetch_error_logs(db_path=self.db_path)) == 2

    def test_same_message_different_type_not_merged(self):
        self.error_log.record("ProviderError", "boom")
        self.error_log.record("ConfigNotFound", "boom")

        assert len(fetch_error_logs(db_path=self.db_path)) == 2

    def test_resolved_entry_starts_a_new_one(self):
        self.error_log.record("ProviderError", "boom")
        conn = get_connection(self.db_path)
        try:
            conn.execute("UPDATE error_logs SET resolved = 1")
            conn.commit()
        finally:
            conn.close()

        self.error_log.record("ProviderError", "boom")

        assert len(fetch_error_logs(db_path=self.db_path)) == 1
        assert len(fetch_error_logs(include_resolved=True, db_path=self.db_path)) == 2

    def test_long_messages_truncated(self):
        self.error_log.record("ProviderError", "x" * (MAX_MESSAGE_LENGTH + 500))
        entry = fetch_error_logs(db_path=self.db_path)[0]
        assert len(entry.error_message) == MAX_MESSAGE_LENGTH

    @patch('funnel_lab.core.error_log.upsert_error_log')
    def test_write_failure_never_raises(self, mock_upsert):
        mock_upsert.side_effect = sqlite3.OperationalError("disk I/O error")
        assert self.error_log.record("ProviderError", "boom") is False
