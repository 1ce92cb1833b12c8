"""Share-link lifecycle service.

``ShareLinkStore`` owns token and short-code generation and the two
mutations a link ever sees after creation: the monotonic view increment
and the one-way revoke.  Persistence goes through a ``ShareLinkRepository``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..protocols import (
    MemberRepository,
    ReportRepository,
    ShareLinkRepository,
    WorkspaceRepository,
)
from ..security.workspace_authz import (
    get_active_membership,
    is_manager,
    require_workspace,
    require_workspace_membership,
)
from .model import (
    ACCESS_ROLES,
    DEFAULT_EXPIRY_DAYS,
    CreatedShareLink,
    ShareLink,
    ShareLinkConflict,
    ShareLinkOptions,
    generate_share_token,
    generate_short_code,
    hash_token,
)

logger = logging.getLogger(__name__)

SHORT_CODE_ATTEMPTS = 5

UNSET: Any = object()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ShareLinkUpdate:
    """Settings changes; fields left as ``UNSET`` are not touched."""

    expires_at: Any = UNSET
    max_views: Any = UNSET
    metadata: Any = UNSET

    def changes(self) -> dict[str, Any]:
        return {
            name: value
            for name, value in (
                ("expires_at", self.expires_at),
                ("max_views", self.max_views),
                ("metadata", self.metadata),
            )
            if value is not UNSET
        }


class ShareLinkStore:
    """Create, look up, revoke and count views of share links.

    Args:
        share_repo: Share link persistence.
        workspace_repo: Used to confirm the target workspace exists.
        member_repo: Used for creator/revoker authorization.
        report_repo: Used to confirm the snapshot exists in the workspace.
        default_expiry: Expiry applied when the caller does not choose one.
        clock: Source of the current UTC time.
    """

    def __init__(
        self,
        share_repo: ShareLinkRepository,
        workspace_repo: WorkspaceRepository,
        member_repo: MemberRepository,
        report_repo: ReportRepository,
        *,
        default_expiry: timedelta = timedelta(days=DEFAULT_EXPIRY_DAYS),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repo = share_repo
        self._workspaces = workspace_repo
        self._members = member_repo
        self._reports = report_repo
        self._default_expiry = default_expiry
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    # ── Creation ──────────────────────────────────────────────────────

    async def create(
        self,
        snapshot_id: str,
        workspace_id: str,
        creator_id: str,
        options: ShareLinkOptions | None = None,
    ) -> CreatedShareLink:
        """Create a link for a snapshot; returns it with the one-time token.

        Raises:
            ForbiddenError: creator is not an active member of the workspace
                (unknown workspaces included).
            NotFoundError: snapshot does not exist or belongs to another
                workspace.
            ValidationError: invalid options.
        """
        options = options or ShareLinkOptions()
        _validate_options(options)

        await require_workspace_membership(self._members, workspace_id, creator_id)
        await require_workspace(self._workspaces, workspace_id)

        snapshot = await self._reports.get_snapshot(snapshot_id)
        if snapshot is None or snapshot.get("workspace_id") != workspace_id:
            raise NotFoundError(f"Snapshot {snapshot_id} not found", code="snapshot_not_found")

        now = self._clock()
        if options.expires_at is not None:
            expires_at = options.expires_at
        elif options.use_default_expiry:
            expires_at = now + self._default_expiry
        else:
            expires_at = None

        for attempt in range(1, SHORT_CODE_ATTEMPTS + 1):
            token = generate_share_token()
            short_code = generate_short_code()
            if await self._repo.short_code_exists(short_code):
                logger.debug("Short code collision (attempt %d)", attempt)
                continue

            link = ShareLink(
                id="",
                workspace_id=workspace_id,
                snapshot_id=snapshot_id,
                report_id=snapshot.get("report_id"),
                created_by=creator_id,
                token_hash=hash_token(token),
                short_code=short_code,
                expires_at=expires_at,
                max_views=options.max_views,
                requires_auth=options.requires_auth,
                recipient_email=options.recipient_email,
                recipient_contact_id=options.recipient_contact_id,
                access_role=options.access_role,
                metadata=dict(options.metadata),
                created_at=now,
            )
            try:
                link = await self._repo.insert(link)
            except ShareLinkConflict:
                logger.debug("Share link insert conflict (attempt %d)", attempt)
                continue

            logger.info(
                "Share link created id=%s workspace=%s snapshot=%s",
                link.id, workspace_id, snapshot_id,
            )
            return CreatedShareLink(link=link, token=token)

        raise RuntimeError("Could not allocate a unique share link short code")

    # ── Lookup ────────────────────────────────────────────────────────

    async def get(self, link_id: str) -> ShareLink:
        return _found(await self._repo.get(link_id))

    async def fetch_by_token(self, token: str) -> ShareLink:
        if not token:
            raise NotFoundError("Share link not found", code="share_not_found")
        return _found(await self._repo.get_by_token_hash(hash_token(token)))

    async def fetch_by_short_code(self, code: str) -> ShareLink:
        if not code:
            raise NotFoundError("Share link not found", code="share_not_found")
        return _found(await self._repo.get_by_short_code(code.lower()))

    async def list_by_workspace(
        self, workspace_id: str, include_revoked: bool = False,
    ) -> list[ShareLink]:
        return await self._repo.list_for_workspace(workspace_id, include_revoked=include_revoked)

    async def list_by_snapshot(
        self, snapshot_id: str, include_revoked: bool = False,
    ) -> list[ShareLink]:
        return await self._repo.list_for_snapshot(snapshot_id, include_revoked=include_revoked)

    # ── Mutations ─────────────────────────────────────────────────────

    async def revoke(self, link_id: str, requesting_user_id: str) -> ShareLink:
        """Revoke a link permanently.  Revoking a revoked link is a no-op.

        Raises:
            NotFoundError: unknown link.
            ForbiddenError: requester is neither the creator nor a
                workspace owner/admin.
        """
        link = await self.get(link_id)
        await self._authorize_manage(link, requesting_user_id)

        if link.is_revoked:
            return link

        revoked = await self._repo.mark_revoked(link.id, requesting_user_id, self._clock())
        logger.info("Share link revoked id=%s workspace=%s", link.id, link.workspace_id)
        return _found(revoked)

    async def record_view(self, link_id: str) -> ShareLink | None:
        """Atomically count one view.

        Returns the updated link, or None when the link could not take
        another view (revoked or view budget exhausted by a concurrent
        request in the meantime).
        """
        return await self._repo.increment_view_count(link_id, self._clock())

    async def update_settings(
        self,
        link_id: str,
        requesting_user_id: str,
        update: ShareLinkUpdate,
    ) -> ShareLink:
        link = await self.get(link_id)
        await self._authorize_manage(link, requesting_user_id)

        if link.is_revoked:
            raise ValidationError("Revoked share links cannot be changed", code="share_revoked")

        changes = update.changes()
        if "max_views" in changes and changes["max_views"] is not None and changes["max_views"] < 1:
            raise ValidationError("max_views must be at least 1", code="invalid_max_views")
        if not changes:
            return link

        changes["updated_at"] = self._clock()
        return _found(await self._repo.update(link.id, changes))

    async def _authorize_manage(self, link: ShareLink, user_id: str) -> None:
        if link.created_by == user_id:
            return
        membership = await get_active_membership(self._members, link.workspace_id, user_id)
        if not is_manager(membership):
            raise ForbiddenError("Only the link creator or a workspace admin can manage this link")


def _found(link: ShareLink | None) -> ShareLink:
    if link is None:
        raise NotFoundError("Share link not found", code="share_not_found")
    return link


def _validate_options(options: ShareLinkOptions) -> None:
    if options.access_role not in ACCESS_ROLES:
        raise ValidationError(
            "access_role must be one of: " + ", ".join(ACCESS_ROLES),
            code="invalid_access_role",
        )
    if options.max_views is not None and options.max_views < 1:
        raise ValidationError("max_views must be at least 1", code="invalid_max_views")
    if options.expires_at is not None and options.expires_at.tzinfo is None:
        raise ValidationError("expires_at must include a timezone", code="invalid_expires_at")
