"""
Deduplicating error log.

Recurring failures are grouped by error type and a fingerprint of the
message's static portion: ids, timestamps and numbers are masked so
"timeout after 30s" and "timeout after 31s" count as one entry.
"""

import logging
import re
import sqlite3
from datetime import datetime
from typing import Callable, Optional

from .errors import ErrorLogWriteError
from .usage import utc_now
from ..storage.db import DEFAULT_DB_PATH
from ..storage.repository import upsert_error_log

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000

# Applied in order; earlier patterns must not be broken up by later ones
_VARIABLE_PATTERNS = [
    (re.compile(r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"), "<uuid>"),
    (re.compile(r"\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:?\d{2})?"), "<timestamp>"),
    (re.compile(r"\b(?:req|chatcmpl|msg|id)[-_][A-Za-z0-9]+\b"), "<id>"),
    (re.compile(r"\b0x[0-9a-fA-F]+\b"), "<hex>"),
    (re.compile(r"\b[0-9a-fA-F]{16,}\b"), "<hex>"),
    (re.compile(r"\d+(?:\.\d+)?"), "<n>"),
]


def fingerprint(message: str) -> str:
    """Stable grouping key for the static portion of an error message."""
    text = message or ""
    for pattern, placeholder in _VARIABLE_PATTERNS:
        text = pattern.sub(placeholder, text)
    return " ".join(text.split())[:MAX_MESSAGE_LENGTH]


class ErrorLog:
    """Best-effort error recorder; store failures are logged, not raised."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH, clock: Optional[Callable[[], datetime]] = None):
        self.db_path = db_path
        self.clock = clock or utc_now

    def record(
        self,
        error_type: str,
        message: str,
        endpoint: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> bool:
        """Record one occurrence of a failure.

        Increments the open entry for (error_type, fingerprint) when there
        is one, else opens a new entry with frequency 1.

        Returns:
            True if the occurrence was stored, False if the write failed
        """
        message = (message or "")[:MAX_MESSAGE_LENGTH]
        try:
            self._write(error_type, message, endpoint, user_id)
        except ErrorLogWriteError as e:
            logger.error("%s; lost occurrence: %s", e, message)
            return False
        return True

    def _write(
        self,
        error_type: str,
        message: str,
        endpoint: Optional[str],
        user_id: Optional[str]
    ) -> None:
        try:
            upsert_error_log(
                error_type=error_type,
                error_message=message,
                fingerprint=fingerprint(message),
                occurred_at=self.clock(),
                endpoint=endpoint,
                user_id=user_id,
                db_path=self.db_path
            )
        except (sqlite3.Error, ValueError, TypeError) as e:
            raise ErrorLogWriteError(f"Could not write {error_type} error log entry: {e}") from e
