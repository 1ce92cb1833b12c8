"""Account context and subscription updates.

``AccountContextService`` answers "who am I, where am I, what can I do":
the caller's active-member workspaces with role, tier and effective
capabilities, plus the selected (active) workspace.  Results are cached
per user in an injected ``TTLCache``.

``SubscriptionService`` is the billing-sync write path for a workspace's
tier and status.  Every write invalidates the entitlement cache for the
workspace and all cached account contexts, so the next read reflects it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .audit import SUBSCRIPTION_CHANGED, AuditEmitter, AuditEvent
from .cache import TTLCache
from .entitlements.gate import (
    SUBSCRIPTION_STATUSES,
    EntitlementGate,
    subscription_from_row,
)
from .entitlements.tiers import Tier, resolve
from .errors import NotFoundError, ValidationError
from .protocols import MemberRepository, SessionRepository, WorkspaceRepository
from .security.token_verify import AuthIdentity
from .security.workspace_authz import (
    require_workspace,
    require_workspace_manager,
    require_workspace_membership,
)

logger = logging.getLogger(__name__)

CACHE_PREFIX = "account:"


@dataclass(frozen=True)
class WorkspaceContext:
    workspace_id: str
    name: str
    role: str
    tier: Tier
    subscription_status: str
    capabilities: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.workspace_id,
            "name": self.name,
            "role": self.role,
            "tier": self.tier.value,
            "subscription_status": self.subscription_status,
            "capabilities": list(self.capabilities),
        }


@dataclass(frozen=True)
class AccountContext:
    user_id: str
    email: str
    workspaces: tuple[WorkspaceContext, ...] = ()
    active_workspace_id: str | None = None

    @property
    def active_workspace(self) -> WorkspaceContext | None:
        for ws in self.workspaces:
            if ws.workspace_id == self.active_workspace_id:
                return ws
        return None

    def to_dict(self) -> dict[str, Any]:
        active = self.active_workspace
        return {
            "user": {"id": self.user_id, "email": self.email},
            "workspaces": [ws.to_dict() for ws in self.workspaces],
            "active_workspace_id": self.active_workspace_id,
            "active_workspace": active.to_dict() if active else None,
        }


def _cache_key(user_id: str) -> str:
    return f"{CACHE_PREFIX}{user_id}"


class AccountContextService:
    def __init__(
        self,
        workspace_repo: WorkspaceRepository,
        member_repo: MemberRepository,
        session_repo: SessionRepository,
        cache: TTLCache[AccountContext] | None = None,
    ) -> None:
        self._workspaces = workspace_repo
        self._members = member_repo
        self._sessions = session_repo
        self._cache: TTLCache[AccountContext] = cache if cache is not None else TTLCache()

    async def resolve(self, identity: AuthIdentity) -> AccountContext:
        cached = self._cache.get(_cache_key(identity.user_id))
        if cached is not None:
            return cached

        memberships = await self._members.list_for_user(identity.user_id)
        roles = {m["workspace_id"]: m.get("role", "member") for m in memberships}
        rows = await self._workspaces.list_by_ids(list(roles))

        workspaces = []
        for row in rows:
            subscription = subscription_from_row(row)
            entitlements = resolve(subscription.effective_tier)
            workspaces.append(WorkspaceContext(
                workspace_id=row["id"],
                name=row.get("name", ""),
                role=roles[row["id"]],
                tier=subscription.tier,
                subscription_status=subscription.status,
                capabilities=tuple(sorted(c.value for c in entitlements.capabilities)),
            ))

        active_id = await self._sessions.get_active_workspace(identity.user_id)
        if active_id not in roles:
            active_id = workspaces[0].workspace_id if workspaces else None

        context = AccountContext(
            user_id=identity.user_id,
            email=identity.email,
            workspaces=tuple(workspaces),
            active_workspace_id=active_id,
        )
        self._cache.set(_cache_key(identity.user_id), context)
        return context

    async def switch_workspace(self, identity: AuthIdentity, workspace_id: str) -> AccountContext:
        """Select ``workspace_id`` as the caller's active workspace.

        Raises:
            ForbiddenError: caller is not an active member (unknown
                workspaces included).
        """
        await require_workspace_membership(self._members, workspace_id, identity.user_id)
        await require_workspace(self._workspaces, workspace_id)
        await self._sessions.set_active_workspace(identity.user_id, workspace_id)
        self.invalidate(identity.user_id)
        logger.info("Active workspace switched workspace=%s", workspace_id)
        return await self.resolve(identity)

    def invalidate(self, user_id: str) -> None:
        self._cache.invalidate(_cache_key(user_id))

    def invalidate_all(self) -> None:
        self._cache.invalidate_prefix(CACHE_PREFIX)


class SubscriptionService:
    """Applies billing state to a workspace and drops stale cached reads."""

    def __init__(
        self,
        workspace_repo: WorkspaceRepository,
        member_repo: MemberRepository,
        gate: EntitlementGate,
        accounts: AccountContextService,
        audit: AuditEmitter,
    ) -> None:
        self._workspaces = workspace_repo
        self._members = member_repo
        self._gate = gate
        self._accounts = accounts
        self._audit = audit

    async def update(
        self,
        workspace_id: str,
        tier: str,
        status: str,
        *,
        actor_id: str,
        request_id: str | None = None,
    ) -> dict[str, Any]:
        """Set the workspace tier/status (owner or admin only).

        Raises:
            ValidationError: unknown tier or status.
            ForbiddenError: actor is not an owner/admin (unknown workspaces
                included).
        """
        try:
            new_tier = Tier(tier)
        except ValueError:
            raise ValidationError(f"Unknown tier {tier!r}", code="invalid_tier") from None
        if status not in SUBSCRIPTION_STATUSES:
            raise ValidationError(f"Unknown subscription status {status!r}", code="invalid_status")

        await require_workspace_manager(self._members, workspace_id, actor_id)
        previous = await require_workspace(self._workspaces, workspace_id)

        updated = await self._workspaces.update_subscription(workspace_id, new_tier.value, status)
        if updated is None:
            raise NotFoundError(f"Workspace {workspace_id} not found", code="workspace_not_found")

        self._gate.invalidate(workspace_id)
        self._accounts.invalidate_all()

        logger.info(
            "Subscription updated workspace=%s tier=%s status=%s",
            workspace_id, new_tier.value, status,
        )
        await self._audit.log(AuditEvent(
            workspace_id=workspace_id,
            event_type=SUBSCRIPTION_CHANGED,
            user_id=actor_id,
            resource_id=workspace_id,
            request_id=request_id,
            metadata={
                "previous_tier": previous.get("tier"),
                "previous_status": previous.get("subscription_status"),
                "tier": new_tier.value,
                "status": status,
            },
        ))
        return updated
