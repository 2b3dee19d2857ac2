"""
Feature entitlement checks.

A plan's feature map holds, per feature, either a boolean flag or a
monthly quota (a positive int, or -1 for unlimited). Plans whose model
tier is "premium" or "all" are entitled to every feature.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from .usage import UsageTracker
from ..storage.db import DEFAULT_DB_PATH
from ..storage.repository import fetch_active_subscription

logger = logging.getLogger(__name__)

PREMIUM_TIERS = {"premium", "all"}
UNLIMITED = -1


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str
    plan_name: Optional[str] = None


class FeatureAccessGate:
    """Decides whether a user's subscription entitles a feature.

    Pure authorization check: reads the subscription and the user's
    current-period usage, writes nothing.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, tracker: Optional[UsageTracker] = None):
        self.db_path = db_path
        self.tracker = tracker or UsageTracker(db_path)

    def can_use(self, user_id: str, feature: str) -> bool:
        return self.check(user_id, feature).allowed

    def check(self, user_id: str, feature: str) -> AccessDecision:
        """Evaluate the user's entitlement to `feature`."""
        subscription = fetch_active_subscription(user_id, self.db_path)
        if subscription is None or not subscription.plan.is_active:
            return AccessDecision(False, "no active subscription")

        plan = subscription.plan
        if is_premium(plan.features):
            return AccessDecision(True, "premium plan", plan.name)

        entitlement = plan.features.get(feature)
        if entitlement is True:
            return AccessDecision(True, "feature enabled", plan.name)

        if _is_quota(entitlement):
            if entitlement == UNLIMITED:
                return AccessDecision(True, "unlimited quota", plan.name)
            if entitlement > 0:
                used = self.tracker.current_feature_usage(user_id, feature)
                if used < entitlement:
                    return AccessDecision(True, f"{used}/{entitlement} used", plan.name)
                logger.info("User %s exhausted %s quota (%d/%d)", user_id, feature, used, entitlement)
                return AccessDecision(False, "monthly quota exhausted", plan.name)

        return AccessDecision(False, "feature not included in plan", plan.name)


def is_premium(features: dict) -> bool:
    return features.get("models") in PREMIUM_TIERS


def _is_quota(value: Any) -> bool:
    # JSON booleans decode to bool, which is an int subclass
    return isinstance(value, int) and not isinstance(value, bool)
