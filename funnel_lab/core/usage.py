"""
Usage metering.

Appends one immutable ledger row per provider call and maintains the
per-day aggregate counters and per-user billing-period counters.
Counters are incremented with the store's atomic upsert, never with a
read-modify-write in Python.
"""

import calendar
import logging
import sqlite3
from datetime import date, datetime, timezone
from typing import Callable, Optional, Tuple

from .errors import MetricUpdateError
from ..storage.db import DEFAULT_DB_PATH
from ..storage.models import UsageMetric
from ..storage.repository import (
    fetch_feature_usage,
    increment_feature_usage,
    increment_global_metric,
    insert_usage_metric,
)

logger = logging.getLogger(__name__)

CACHE_HITS = "cache_hits"
CACHE_MISSES = "cache_misses"


def billing_period(day: date) -> Tuple[date, date]:
    """Calendar month containing `day`, as (first day, last day)."""
    last_day = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last_day)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UsageTracker:
    """Records usage metrics and counters in the backing store.

    Every write failure is raised as MetricUpdateError so callers can
    decide to isolate it.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, clock: Optional[Callable[[], datetime]] = None):
        self.db_path = db_path
        self.clock = clock or utc_now

    def record(self, metric: UsageMetric) -> None:
        """Append one usage row. Rows are never updated afterwards."""
        try:
            insert_usage_metric(metric, self.db_path)
        except sqlite3.Error as e:
            raise MetricUpdateError(f"Failed to record usage metric: {e}") from e
        logger.debug(
            "Recorded %s usage for %s: %d in / %d out, $%s",
            "successful" if metric.success else "failed",
            metric.model_name,
            metric.tokens_input,
            metric.tokens_output,
            metric.estimated_cost
        )

    def increment_global_metric(self, metric_type: str, amount: int = 1) -> None:
        """Add `amount` to today's aggregate counter for `metric_type`."""
        today = self.clock().date()
        try:
            increment_global_metric(metric_type, today, amount, self.db_path)
        except sqlite3.Error as e:
            raise MetricUpdateError(f"Failed to increment metric {metric_type}: {e}") from e

    def increment_feature_usage(self, user_id: str, feature: str) -> None:
        """Count one use of `feature` in the user's current billing period."""
        start, end = billing_period(self.clock().date())
        try:
            increment_feature_usage(user_id, feature, start, end, self.db_path)
        except sqlite3.Error as e:
            raise MetricUpdateError(f"Failed to increment usage of {feature}: {e}") from e

    def current_feature_usage(self, user_id: str, feature: str) -> int:
        """Uses of `feature` in the user's current billing period."""
        start, _ = billing_period(self.clock().date())
        usage = fetch_feature_usage(user_id, feature, start, self.db_path)
        return usage.count if usage else 0
