"""Workspace entitlement gate.

Resolves a workspace's subscription (tier + status) and checks a
capability against the static tier table.  A denial produces a structured
upgrade option (target tier, price, savings, benefits) instead of a bare
403, and records the blocked attempt in the audit log.

Subscription status:
  ``past_due`` and ``cancelled`` workspaces keep only base-tier
  capabilities; denials caused by that carry reason
  ``subscription_inactive`` rather than ``tier_insufficient``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..audit import AuditEmitter, emit_entitlement_denied
from ..cache import TTLCache
from ..errors import PaymentRequiredError, ValidationError
from ..protocols import WorkspaceRepository
from ..security.workspace_authz import require_workspace
from .tiers import (
    BASE_TIER,
    PLANS,
    Capability,
    Tier,
    get_minimum_tier_for,
    has_capability,
    parse_capability,
    parse_tier,
)

logger = logging.getLogger(__name__)

INACTIVE_STATUSES = frozenset({"past_due", "cancelled"})
SUBSCRIPTION_STATUSES = frozenset({"active", "trialing", "past_due", "cancelled"})

REASON_TIER_INSUFFICIENT = "tier_insufficient"
REASON_SUBSCRIPTION_INACTIVE = "subscription_inactive"
REASON_UNKNOWN_CAPABILITY = "unknown_capability"

DEFAULT_UPGRADE_URL = "/pricing"


@dataclass(frozen=True)
class Subscription:
    workspace_id: str
    tier: Tier
    status: str = "active"

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_STATUSES

    @property
    def effective_tier(self) -> Tier:
        return self.tier if self.is_active else BASE_TIER


@dataclass(frozen=True)
class UpgradeOption:
    """What the caller would need to buy to unlock ``capability``."""

    capability: str
    current_tier: str
    required_tier: str | None
    reason: str
    upgrade_url: str
    price: str | None = None
    savings: str | None = None
    benefits: tuple[str, ...] = ()
    available_in: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "feature": self.capability,
            "reason": self.reason,
            "current_tier": self.current_tier,
            "required_tier": self.required_tier,
            "upgrade_url": self.upgrade_url,
            "details": {
                "available_in": self.available_in,
                "price": self.price,
                "savings": self.savings,
                "benefits": list(self.benefits),
            },
        }


@dataclass(frozen=True)
class EntitlementDecision:
    capability: str
    allowed: bool
    tier: Tier
    reason: str | None = None
    upgrade: UpgradeOption | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "feature": self.capability,
            "enabled": self.allowed,
            "tier": self.tier.value,
            "reason": self.reason,
        }
        if self.upgrade is not None:
            body["upgrade"] = self.upgrade.to_dict()
        return body


def build_upgrade_option(
    capability: str,
    current_tier: Tier,
    reason: str,
    upgrade_url: str = DEFAULT_UPGRADE_URL,
) -> UpgradeOption:
    required = get_minimum_tier_for(capability)
    if required is None:
        return UpgradeOption(
            capability=capability,
            current_tier=current_tier.value,
            required_tier=None,
            reason=reason,
            upgrade_url=upgrade_url,
        )
    plan = PLANS[required]
    return UpgradeOption(
        capability=capability,
        current_tier=current_tier.value,
        required_tier=required.value,
        reason=reason,
        upgrade_url=upgrade_url,
        price=plan.price_label,
        savings=f"Save ${plan.annual_savings}/year with annual billing",
        benefits=plan.benefits,
        available_in=plan.display_name,
    )


class EntitlementGate:
    """Capability checks for workspaces, with cached subscription lookups.

    Args:
        workspace_repo: Source of workspace tier/status.
        audit: Receives ``entitlement.denied`` events.
        cache: Subscription cache; call ``invalidate`` after billing writes.
        upgrade_url: Link rendered into upgrade options.
    """

    def __init__(
        self,
        workspace_repo: WorkspaceRepository,
        audit: AuditEmitter,
        cache: TTLCache[Subscription] | None = None,
        upgrade_url: str = DEFAULT_UPGRADE_URL,
    ) -> None:
        self._workspaces = workspace_repo
        self._audit = audit
        self._cache: TTLCache[Subscription] = cache if cache is not None else TTLCache()
        self._upgrade_url = upgrade_url

    async def subscription_for(self, workspace_id: str) -> Subscription:
        cached = self._cache.get(workspace_id)
        if cached is not None:
            return cached
        workspace = await require_workspace(self._workspaces, workspace_id)
        subscription = subscription_from_row(workspace)
        self._cache.set(workspace_id, subscription)
        return subscription

    def invalidate(self, workspace_id: str) -> None:
        self._cache.invalidate(workspace_id)

    async def check(self, workspace_id: str, capability: Capability | str) -> EntitlementDecision:
        subscription = await self.subscription_for(workspace_id)
        return evaluate(subscription, capability, self._upgrade_url)

    async def require_capability(
        self,
        workspace_id: str,
        capability: Capability | str,
        *,
        user_id: str | None,
        request_id: str | None = None,
    ) -> EntitlementDecision:
        """Return the allowing decision, or audit and raise on denial.

        Raises:
            ValidationError: unknown capability name.
            PaymentRequiredError: the workspace plan lacks the capability.
        """
        decision = await self.check(workspace_id, capability)
        if decision.allowed:
            return decision

        if decision.reason == REASON_UNKNOWN_CAPABILITY:
            raise ValidationError(f"Unknown feature {capability!s}", code="unknown_feature")

        logger.info(
            "Entitlement denied workspace=%s capability=%s reason=%s",
            workspace_id, decision.capability, decision.reason,
        )
        await emit_entitlement_denied(
            self._audit,
            workspace_id=workspace_id,
            user_id=user_id,
            capability=decision.capability,
            current_tier=decision.tier.value,
            required_tier=decision.upgrade.required_tier if decision.upgrade else None,
            reason=decision.reason or REASON_TIER_INSUFFICIENT,
            request_id=request_id,
        )
        plan_name = decision.upgrade.available_in if decision.upgrade else None
        raise PaymentRequiredError(
            f"This feature requires the {plan_name}" if plan_name else "Upgrade required",
            upgrade=decision.upgrade,
        )


def subscription_from_row(workspace: dict[str, Any]) -> Subscription:
    status = workspace.get("subscription_status") or "active"
    return Subscription(
        workspace_id=str(workspace.get("id", "")),
        tier=parse_tier(workspace.get("tier")),
        status=status,
    )


def evaluate(
    subscription: Subscription,
    capability: Capability | str,
    upgrade_url: str = DEFAULT_UPGRADE_URL,
) -> EntitlementDecision:
    cap = parse_capability(capability)
    name = cap.value if cap is not None else str(capability)
    if cap is None:
        return EntitlementDecision(
            capability=name,
            allowed=False,
            tier=subscription.tier,
            reason=REASON_UNKNOWN_CAPABILITY,
        )

    if has_capability(subscription.effective_tier, cap):
        return EntitlementDecision(capability=name, allowed=True, tier=subscription.tier)

    if not subscription.is_active and has_capability(subscription.tier, cap):
        reason = REASON_SUBSCRIPTION_INACTIVE
    else:
        reason = REASON_TIER_INSUFFICIENT
    return EntitlementDecision(
        capability=name,
        allowed=False,
        tier=subscription.tier,
        reason=reason,
        upgrade=build_upgrade_option(name, subscription.tier, reason, upgrade_url),
    )
