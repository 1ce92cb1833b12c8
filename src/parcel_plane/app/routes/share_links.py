"""Share-link management endpoints.

  POST   /share-links                  create (any active member)
  POST   /share-links/create           create, gated on share_collaboration (402)
  GET    /share-links                  list by snapshot_id or workspace_id
  PATCH  /share-links/{ref}            update expiry / max views / metadata
  DELETE /share-links/{ref}            revoke (creator or owner/admin)
  GET    /share-links/{ref}/events     audit trail of one link

``ref`` is the plaintext token returned at creation, or the link id (the
list endpoint exposes ids, never tokens).

Token security:
  - The plaintext token is returned exactly once, in the create response.
  - Only the SHA-256 hash is persisted.

Expiry on create:
  - ``expires_at`` omitted: the configured default (7 days).
  - ``expires_at: null``: the link never expires.
  - A past timestamp is accepted; the link reports ``expired`` on access.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from ..audit import (
    AuditEmitter,
    emit_share_created,
    emit_share_revoked,
    emit_share_updated,
)
from ..entitlements.gate import EntitlementGate
from ..entitlements.tiers import Capability
from ..errors import NotFoundError, ValidationError
from ..protocols import MemberRepository, ReportRepository, WorkspaceRepository
from ..security.auth_guard import get_auth_identity
from ..security.token_verify import AuthIdentity
from ..security.workspace_authz import require_workspace, require_workspace_membership
from ..sharing.model import DEFAULT_ACCESS_ROLE, CreatedShareLink, ShareLink, ShareLinkOptions
from ..sharing.store import UNSET, ShareLinkStore, ShareLinkUpdate


# ── Request schemas ──────────────────────────────────────────────────


class CreateShareLinkRequest(BaseModel):
    snapshot_id: str = Field(..., min_length=1)
    workspace_id: str = Field(..., min_length=1)
    expires_at: datetime | None = None
    max_views: int | None = None
    requires_auth: bool = False
    recipient_email: str | None = None
    recipient_contact_id: str | None = None
    access_role: str = DEFAULT_ACCESS_ROLE
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_options(self) -> ShareLinkOptions:
        return ShareLinkOptions(
            expires_at=self.expires_at,
            # An explicit null means "never expires"; omission means default.
            use_default_expiry="expires_at" not in self.model_fields_set,
            max_views=self.max_views,
            requires_auth=self.requires_auth,
            recipient_email=self.recipient_email,
            recipient_contact_id=self.recipient_contact_id,
            access_role=self.access_role,
            metadata=self.metadata,
        )


class UpdateShareLinkRequest(BaseModel):
    expires_at: datetime | None = None
    max_views: int | None = None
    metadata: dict[str, Any] | None = None

    def to_update(self) -> ShareLinkUpdate:
        sent = self.model_fields_set
        if self.expires_at is not None and self.expires_at.tzinfo is None:
            raise ValidationError("expires_at must include a timezone", code="invalid_expires_at")
        return ShareLinkUpdate(
            expires_at=self.expires_at if "expires_at" in sent else UNSET,
            max_views=self.max_views if "max_views" in sent else UNSET,
            metadata=dict(self.metadata or {}) if "metadata" in sent else UNSET,
        )


# ── Helpers ──────────────────────────────────────────────────────────


def share_urls(public_url: str, token: str, short_code: str) -> dict[str, str]:
    base = public_url.rstrip("/")
    return {
        "url": f"{base}/share/{token}",
        "short_url": f"{base}/s/{short_code}",
    }


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


async def _resolve_link(store: ShareLinkStore, ref: str) -> ShareLink:
    try:
        return await store.fetch_by_token(ref)
    except NotFoundError:
        return await store.get(ref)


# ── Route factory ────────────────────────────────────────────────────


def create_share_links_router(
    store: ShareLinkStore,
    gate: EntitlementGate,
    audit: AuditEmitter,
    workspace_repo: WorkspaceRepository,
    member_repo: MemberRepository,
    report_repo: ReportRepository,
    *,
    public_url: str,
) -> APIRouter:
    """Create the share-link management router.

    Args:
        store: Share link lifecycle service.
        gate: Entitlement gate for the collaboration endpoint.
        audit: Audit emitter.
        workspace_repo / member_repo: Membership checks for reads.
        report_repo: Resolves the owning workspace of a snapshot listing.
        public_url: Base URL for the returned share and short links.
    """
    router = APIRouter(prefix="/share-links", tags=["share-links"])

    async def _create(
        body: CreateShareLinkRequest,
        identity: AuthIdentity,
    ) -> dict[str, Any]:
        created: CreatedShareLink = await store.create(
            body.snapshot_id,
            body.workspace_id,
            identity.user_id,
            body.to_options(),
        )
        link = created.link
        await emit_share_created(
            audit,
            workspace_id=link.workspace_id,
            link_id=link.id,
            snapshot_id=link.snapshot_id,
            token=created.token,
            user_id=identity.user_id,
            expires_at=link.expires_at,
            max_views=link.max_views,
            requires_auth=link.requires_auth,
        )
        return {
            "share_link": {
                **link.to_public_dict(store.now()),
                "token": created.token,
                **share_urls(public_url, created.token, link.short_code),
            },
        }

    @router.post("", status_code=201)
    async def create_share_link(
        body: CreateShareLinkRequest,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        """Create a share link for a snapshot.  The token is shown once."""
        return await _create(body, identity)

    @router.post("/create", status_code=201)
    async def create_collaboration_link(
        body: CreateShareLinkRequest,
        request: Request,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        """Create a collaboration link; 402 with an upgrade option below Portfolio."""
        await require_workspace_membership(member_repo, body.workspace_id, identity.user_id)
        await require_workspace(workspace_repo, body.workspace_id)
        await gate.require_capability(
            body.workspace_id,
            Capability.SHARE_COLLABORATION,
            user_id=identity.user_id,
            request_id=_request_id(request),
        )
        return await _create(body, identity)

    @router.get("")
    async def list_share_links(
        snapshot_id: str | None = None,
        workspace_id: str | None = None,
        include_revoked: bool = False,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        if snapshot_id:
            snapshot = await report_repo.get_snapshot(snapshot_id)
            if snapshot is None:
                raise NotFoundError(f"Snapshot {snapshot_id} not found", code="snapshot_not_found")
            await require_workspace_membership(
                member_repo, snapshot["workspace_id"], identity.user_id,
            )
            links = await store.list_by_snapshot(snapshot_id, include_revoked=include_revoked)
        elif workspace_id:
            await require_workspace_membership(member_repo, workspace_id, identity.user_id)
            await require_workspace(workspace_repo, workspace_id)
            links = await store.list_by_workspace(workspace_id, include_revoked=include_revoked)
        else:
            raise ValidationError("snapshot_id or workspace_id is required", code="missing_filter")

        now = store.now()
        return {"share_links": [link.to_public_dict(now) for link in links]}

    @router.patch("/{ref}")
    async def update_share_link(
        ref: str,
        body: UpdateShareLinkRequest,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        update = body.to_update()
        link = await _resolve_link(store, ref)
        updated = await store.update_settings(link.id, identity.user_id, update)
        changed = list(update.changes())
        if changed:
            await emit_share_updated(
                audit,
                workspace_id=updated.workspace_id,
                link_id=updated.id,
                user_id=identity.user_id,
                changed_fields=changed,
            )
        return {"share_link": updated.to_public_dict(store.now())}

    @router.delete("/{ref}")
    async def revoke_share_link(
        ref: str,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        """Revoke a link.  Revoking an already revoked link succeeds."""
        link = await _resolve_link(store, ref)
        was_revoked = link.is_revoked
        revoked = await store.revoke(link.id, identity.user_id)
        if not was_revoked:
            await emit_share_revoked(
                audit,
                workspace_id=revoked.workspace_id,
                link_id=revoked.id,
                user_id=identity.user_id,
            )
        return {"share_link": revoked.to_public_dict(store.now())}

    @router.get("/{ref}/events")
    async def list_share_link_events(
        ref: str,
        limit: int = 50,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        link = await _resolve_link(store, ref)
        await require_workspace_membership(member_repo, link.workspace_id, identity.user_id)
        events = await audit.list_for_resource(link.id, limit=max(1, min(limit, 200)))
        return {"events": [e.to_dict() for e in events]}

    return router
