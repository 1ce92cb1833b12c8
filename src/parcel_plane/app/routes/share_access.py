"""Public share-link access.

  GET /share/{token}      access by plaintext token
  GET /s/{short_code}     access by short code

Both resolve to the same link and run the same checks.  A successful
access counts one view and returns the snapshot; a failed one returns
``{ok: false, reason}`` with the status for that reason:

  not_found          404
  revoked            410
  expired            410
  max_views_reached  410
  auth_required      401

Views are counted only after every check has passed, including the
authentication check, so anonymous probes never consume the view budget.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..audit import AuditEmitter, emit_share_denied, emit_share_viewed
from ..errors import NotFoundError
from ..protocols import ReportRepository
from ..security.auth_guard import get_optional_identity
from ..security.token_verify import AuthIdentity
from ..sharing.model import ShareLink
from ..sharing.store import ShareLinkStore
from ..sharing.validator import REASON_STATUS, ReasonCode, check_access, validate_link

logger = logging.getLogger(__name__)


def _denied(reason: ReasonCode) -> JSONResponse:
    return JSONResponse(
        status_code=REASON_STATUS[reason],
        content={"ok": False, "reason": reason.value},
    )


def create_share_access_router(
    store: ShareLinkStore,
    report_repo: ReportRepository,
    audit: AuditEmitter,
) -> APIRouter:
    router = APIRouter(tags=["share-access"])

    async def _access(
        lookup: Callable[[], Awaitable[ShareLink]],
        request: Request,
        identity: AuthIdentity | None,
    ):
        try:
            link: ShareLink | None = await lookup()
        except NotFoundError:
            link = None

        user_id = identity.user_id if identity else None
        result = check_access(link, store.now(), user_id)
        if not result.valid:
            if link is not None:
                await emit_share_denied(
                    audit,
                    workspace_id=link.workspace_id,
                    link_id=link.id,
                    reason=result.reason.value,
                    user_id=user_id,
                )
            return _denied(result.reason)

        viewed = await store.record_view(link.id)
        if viewed is None:
            # Lost the race for the last view, or revoked in between.
            current = await store.get(link.id)
            reason = validate_link(current, store.now()).reason or ReasonCode.MAX_VIEWS_REACHED
            await emit_share_denied(
                audit,
                workspace_id=link.workspace_id,
                link_id=link.id,
                reason=reason.value,
                user_id=user_id,
            )
            return _denied(reason)

        snapshot = await report_repo.get_snapshot(viewed.snapshot_id)
        report = await report_repo.get_report(viewed.report_id) if viewed.report_id else None

        await emit_share_viewed(
            audit,
            workspace_id=viewed.workspace_id,
            link_id=viewed.id,
            user_id=user_id,
            view_count=viewed.view_count,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
        logger.info("Share link viewed id=%s views=%d", viewed.id, viewed.view_count)

        return {
            "ok": True,
            "snapshot": snapshot,
            "report": report,
            "share_link": {
                "id": viewed.id,
                "access_role": viewed.access_role,
                "expires_at": viewed.expires_at.isoformat() if viewed.expires_at else None,
                "max_views": viewed.max_views,
                "view_count": viewed.view_count,
            },
        }

    @router.get("/share/{token}")
    async def access_by_token(
        token: str,
        request: Request,
        identity: AuthIdentity | None = Depends(get_optional_identity),
    ):
        return await _access(lambda: store.fetch_by_token(token), request, identity)

    @router.get("/s/{short_code}")
    async def access_by_short_code(
        short_code: str,
        request: Request,
        identity: AuthIdentity | None = Depends(get_optional_identity),
    ):
        return await _access(lambda: store.fetch_by_short_code(short_code), request, identity)

    return router
