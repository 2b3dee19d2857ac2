"""
Content-addressed result cache.

Keys are SHA-256 digests of the normalised request inputs; entries older
than the TTL read as misses and are left in place for external
retention jobs.
"""

import hashlib
import logging
import sqlite3
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Sequence

from .errors import CacheError, MetricUpdateError
from .usage import CACHE_HITS, CACHE_MISSES, UsageTracker, utc_now
from ..storage.db import DEFAULT_DB_PATH
from ..storage.repository import fetch_cache_entry, upsert_cache_entry

logger = logging.getLogger(__name__)

# Unit separator. str.split() treats it as whitespace, so normalisation
# removes it from every input and the joined string stays unambiguous.
KEY_SEPARATOR = "\x1f"
DEFAULT_TTL = timedelta(hours=24)


def normalize_input(text: str) -> str:
    """Trim and collapse every whitespace run to a single space."""
    return " ".join(text.split())


def compute_key(inputs: Sequence[str], prefix: str = "funnel_analysis") -> str:
    """Deterministic cache key for an ordered list of inputs.

    Changing the separator, the normalisation or the order of inputs
    invalidates every existing entry.

    Args:
        inputs: Request inputs, in a fixed order
        prefix: Feature namespace

    Returns:
        `<prefix>_<64 hex chars>`
    """
    joined = KEY_SEPARATOR.join(normalize_input(text) for text in inputs)
    digest = hashlib.sha256(joined.encode("utf-8")).hexdigest()
    return f"{prefix}_{digest}"


class CacheStore:
    """Upsert-or-fetch store for analysis results with wall-clock TTL."""

    def __init__(
        self,
        db_path: str = DEFAULT_DB_PATH,
        ttl: timedelta = DEFAULT_TTL,
        prefix: str = "funnel_analysis",
        tracker: Optional[UsageTracker] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.db_path = db_path
        self.ttl = ttl
        self.prefix = prefix
        self.tracker = tracker
        self.clock = clock or utc_now

    def compute_key(self, inputs: Sequence[str]) -> str:
        return compute_key(inputs, self.prefix)

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the cached value, or None on a miss.

        An entry aged `ttl` or more is a miss. Read failures are logged
        and treated as a miss.
        """
        try:
            entry = self._fetch(key)
        except CacheError as e:
            logger.warning("Cache read failed for %s, treating as miss: %s", key, e)
            entry = None

        if entry is not None and self.clock() - entry.created_at < self.ttl:
            self._count(CACHE_HITS)
            return entry.value

        if entry is not None:
            logger.debug("Cache entry %s expired (created %s)", key, entry.created_at.isoformat())
        self._count(CACHE_MISSES)
        return None

    def put(self, key: str, value: Dict[str, Any]) -> None:
        """Insert or overwrite `key`, stamping it with the current time.

        Raises:
            CacheError: If the write fails
        """
        try:
            upsert_cache_entry(key, value, self.clock(), self.db_path)
        except (sqlite3.Error, TypeError, ValueError) as e:
            raise CacheError(f"Failed to write cache entry {key}: {e}") from e

    def _fetch(self, key: str):
        try:
            return fetch_cache_entry(key, self.db_path)
        except (sqlite3.Error, ValueError) as e:
            raise CacheError(str(e)) from e

    def _count(self, metric_type: str) -> None:
        if self.tracker is None:
            return
        try:
            self.tracker.increment_global_metric(metric_type)
        except MetricUpdateError as e:
            logger.warning("Could not update %s counter: %s", metric_type, e)
