"""Plans, workspace entitlements and billing sync.

  GET /plans                                        public plan catalogue
  GET /workspaces/{id}/entitlements                 capability map (members)
  GET /workspaces/{id}/entitlements/{capability}    one decision (members)
  PUT /workspaces/{id}/subscription                 tier/status (owner/admin)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from ..account import SubscriptionService
from ..entitlements.gate import EntitlementGate
from ..entitlements.tiers import PLANS, TIER_ORDER, parse_capability, resolve
from ..errors import ValidationError
from ..protocols import MemberRepository
from ..security.auth_guard import get_auth_identity
from ..security.token_verify import AuthIdentity
from ..security.workspace_authz import require_workspace_membership


class SubscriptionUpdateRequest(BaseModel):
    tier: str = Field(..., min_length=1)
    status: str = "active"


def create_entitlements_router(
    gate: EntitlementGate,
    subscriptions: SubscriptionService,
    member_repo: MemberRepository,
) -> APIRouter:
    router = APIRouter(tags=["entitlements"])

    @router.get("/plans")
    async def list_plans():
        return {"plans": [PLANS[tier].to_dict() for tier in TIER_ORDER]}

    @router.get("/workspaces/{workspace_id}/entitlements")
    async def get_entitlements(
        workspace_id: str,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        await require_workspace_membership(member_repo, workspace_id, identity.user_id)
        subscription = await gate.subscription_for(workspace_id)
        entitlements = resolve(subscription.effective_tier)
        return {
            "workspace_id": workspace_id,
            "tier": subscription.tier.value,
            "subscription_status": subscription.status,
            "effective_tier": subscription.effective_tier.value,
            "entitlements": entitlements.to_dict(),
        }

    @router.get("/workspaces/{workspace_id}/entitlements/{capability}")
    async def check_entitlement(
        workspace_id: str,
        capability: str,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        if parse_capability(capability) is None:
            raise ValidationError(f"Unknown feature {capability!r}", code="unknown_feature")
        await require_workspace_membership(member_repo, workspace_id, identity.user_id)
        decision = await gate.check(workspace_id, capability)
        return decision.to_dict()

    @router.put("/workspaces/{workspace_id}/subscription")
    async def update_subscription(
        workspace_id: str,
        body: SubscriptionUpdateRequest,
        request: Request,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        workspace = await subscriptions.update(
            workspace_id,
            body.tier,
            body.status,
            actor_id=identity.user_id,
            request_id=getattr(request.state, "request_id", None),
        )
        return {
            "workspace_id": workspace_id,
            "tier": workspace.get("tier"),
            "subscription_status": workspace.get("subscription_status"),
        }

    return router
