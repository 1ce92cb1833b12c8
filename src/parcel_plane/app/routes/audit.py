"""Audit trail endpoints.

  GET  /workspaces/{id}/audit-events   members; requires view_audit_logs
  POST /audit/blocked-access           client-reported paywall hit

Blocked-access reports are best-effort: the endpoint answers
``200 {status: ok}`` whatever happens, and records an event only for an
authenticated active member of the named workspace.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from ..audit import FEATURE_BLOCKED, AuditEmitter, AuditEvent
from ..entitlements.gate import EntitlementGate
from ..entitlements.tiers import Capability
from ..protocols import MemberRepository
from ..security.auth_guard import get_auth_identity, get_optional_identity
from ..security.token_verify import AuthIdentity
from ..security.workspace_authz import (
    get_active_membership,
    require_workspace_membership,
)

logger = logging.getLogger(__name__)

MAX_EVENTS = 200


def create_audit_router(
    audit: AuditEmitter,
    gate: EntitlementGate,
    member_repo: MemberRepository,
) -> APIRouter:
    router = APIRouter(tags=["audit"])

    @router.get("/workspaces/{workspace_id}/audit-events")
    async def list_audit_events(
        workspace_id: str,
        request: Request,
        limit: int = 50,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        await require_workspace_membership(member_repo, workspace_id, identity.user_id)
        await gate.require_capability(
            workspace_id,
            Capability.VIEW_AUDIT_LOGS,
            user_id=identity.user_id,
            request_id=getattr(request.state, "request_id", None),
        )
        events = await audit.list_for_workspace(workspace_id, limit=max(1, min(limit, MAX_EVENTS)))
        return {"events": [e.to_dict() for e in events]}

    @router.post("/audit/blocked-access")
    async def report_blocked_access(
        request: Request,
        identity: AuthIdentity | None = Depends(get_optional_identity),
    ):
        ok = {"status": "ok"}
        if identity is None:
            return ok
        try:
            body = await request.json()
        except ValueError:
            return ok
        if not isinstance(body, dict):
            return ok

        workspace_id = body.get("workspace_id")
        feature = body.get("feature") or body.get("feature_id")
        if not isinstance(workspace_id, str) or not isinstance(feature, str):
            return ok
        try:
            membership = await get_active_membership(member_repo, workspace_id, identity.user_id)
        except Exception:
            logger.exception("Blocked-access membership lookup failed workspace=%s", workspace_id)
            return ok
        if membership is None:
            logger.info("Blocked-access report ignored for non-member workspace=%s", workspace_id)
            return ok

        await audit.log(AuditEvent(
            workspace_id=workspace_id,
            event_type=FEATURE_BLOCKED,
            user_id=identity.user_id,
            resource_id=feature,
            request_id=getattr(request.state, "request_id", None),
            metadata={
                "feature": feature,
                "tier": body.get("tier"),
                "path": body.get("path"),
                "user_agent": request.headers.get("user-agent"),
            },
        ))
        return ok

    return router
