"""
Unit tests for feature entitlement checks.
"""

import os
import tempfile
from datetime import datetime, timezone

from funnel_lab.core.access import FeatureAccessGate
from funnel_lab.core.usage import UsageTracker
from funnel_lab.storage.models import SubscriptionPlan
from funnel_lab.storage.repository import initialize_schema, insert_subscription, upsert_plan

FEATURE = "funnel_analysis"


class TestFeatureAccessGate:
    """Test plan feature maps against the gate."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.now = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)
        self.tracker = UsageTracker(self.db_path, clock=lambda: self.now)
        self.gate = FeatureAccessGate(self.db_path, tracker=self.tracker)

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _subscribe(self, features: dict, plan_name: str = "plan", status: str = "active"):
        upsert_plan(SubscriptionPlan(plan_name, features), self.db_path)
        insert_subscription("user-1", plan_name, status=status, db_path=self.db_path)

    def test_no_subscription_denied(self):
        decision = self.gate.check("user-1", FEATURE)
        assert decision.allowed is False
        assert decision.reason == "no active subscription"

    def test_inactive_subscription_denied(self):
        self._subscribe({FEATURE: True}, status="past_due")
        assert self.gate.can_use("user-1", FEATURE) is False

    def test_boolean_flag_true_allowed(self):
        self._subscribe({FEATURE: True}, plan_name="pro")
        decision = self.gate.check("user-1", FEATURE)
        assert decision.allowed is True
        assert decision.plan_name == "pro"

    def test_boolean_flag_false_denied(self):
        self._subscribe({FEATURE: False})
        decision = self.gate.check("user-1", FEATURE)
        assert decision.allowed is False
        assert decision.reason == "feature not included in plan"

    def test_feature_absent_denied(self):
        self._subscribe({"other_feature": True})
        assert self.gate.can_use("user-1", FEATURE) is False

    def test_premium_tier_allows_everything(self):
        self._subscribe({"models": "premium"})
        assert self.gate.can_use("user-1", FEATURE) is True

    def test_all_tier_allows_everything(self):
        self._subscribe({"models": "all", FEATURE: False})
        assert self.gate.can_use("user-1", FEATURE) is True

    def test_basic_tier_is_not_premium(self):
        self._subscribe({"models": "basic"})
        assert self.gate.can_use("user-1", FEATURE) is False

    def test_unlimited_quota_allowed(self):
        self._subscribe({FEATURE: -1})
        assert self.gate.can_use("user-1", FEATURE) is True

    def test_zero_quota_denied(self):
        self._subscribe({FEATURE: 0})
        assert self.gate.can_use("user-1", FEATURE) is False

    def test_quota_allows_until_exhausted(self):
        self._subscribe({FEATURE: 2})

        assert self.gate.can_use("user-1", FEATURE) is True
        self.tracker.increment_feature_usage("user-1", FEATURE)
        assert self.gate.can_use("user-1", FEATURE) is True
        self.tracker.increment_feature_usage("user-1", FEATURE)

        decision = self.gate.check("user-1", FEATURE)
        assert decision.allowed is False
        assert decision.reason == "monthly quota exhausted"

    def test_quota_resets_next_month(self):
        self._subscribe({FEATURE: 1})
        self.tracker.increment_feature_usage("user-1", FEATURE)
        assert self.gate.can_use("user-1", FEATURE) is False

        self.now = datetime(2025, 4, 1, 0, 0, tzinfo=timezone.utc)
        assert self.gate.can_use("user-1", FEATURE) is True

    def test_gate_writes_nothing(self):
        self._subscribe({FEATURE: 5})
        for _ in range(3):
            self.gate.check("user-1", FEATURE)
        assert self.tracker.current_feature_usage("user-1", FEATURE) == 0
