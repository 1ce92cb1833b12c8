"""Subscription tiers, capability lookups and the entitlement gate."""

from .gate import (
    EntitlementDecision,
    EntitlementGate,
    Subscription,
    UpgradeOption,
)
from .tiers import (
    PLANS,
    TIER_CAPABILITIES,
    TIER_ORDER,
    Capability,
    EntitlementSet,
    EntitlementTableError,
    Tier,
    get_minimum_tier_for,
    has_capability,
    resolve,
)

__all__ = [
    "PLANS",
    "TIER_CAPABILITIES",
    "TIER_ORDER",
    "Capability",
    "EntitlementDecision",
    "EntitlementGate",
    "EntitlementSet",
    "EntitlementTableError",
    "Subscription",
    "Tier",
    "UpgradeOption",
    "get_minimum_tier_for",
    "has_capability",
    "resolve",
]
