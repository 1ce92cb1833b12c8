"""Workspace authorization helpers.

Shared checks for workspace-scoped operations.  Enforces tenant isolation
by requiring an active membership, and distinguishes workspace managers
(owner/admin) from ordinary members.
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import ForbiddenError, NotFoundError, UnauthenticatedError
from ..protocols import MemberRepository, WorkspaceRepository

logger = logging.getLogger(__name__)

MANAGER_ROLES = frozenset({"owner", "admin"})


def is_manager(membership: dict[str, Any] | None) -> bool:
    return bool(membership) and membership.get("role") in MANAGER_ROLES


async def require_workspace(
    workspace_repo: WorkspaceRepository,
    workspace_id: str,
) -> dict[str, Any]:
    workspace = await workspace_repo.get(workspace_id)
    if workspace is None:
        raise NotFoundError(f"Workspace {workspace_id} not found", code="workspace_not_found")
    return workspace


async def get_active_membership(
    member_repo: MemberRepository,
    workspace_id: str,
    user_id: str,
) -> dict[str, Any] | None:
    membership = await member_repo.get_membership(workspace_id, user_id)
    if membership is None:
        return None
    # In-memory rows may carry non-active statuses; filter here too.
    status = membership.get("status")
    if status is not None and status != "active":
        return None
    return membership


async def require_workspace_membership(
    member_repo: MemberRepository,
    workspace_id: str,
    user_id: str | None,
) -> dict[str, Any]:
    """Return the caller's active membership in ``workspace_id``.

    Raises:
        UnauthenticatedError: no user identity.
        ForbiddenError: not an active member.
    """
    if not user_id:
        raise UnauthenticatedError("Authentication required", code="no_credentials")

    membership = await get_active_membership(member_repo, workspace_id, user_id)
    if membership is None:
        logger.info("Membership denied for workspace=%s", workspace_id)
        raise ForbiddenError("Not an active member of this workspace")
    return membership


async def require_workspace_manager(
    member_repo: MemberRepository,
    workspace_id: str,
    user_id: str | None,
) -> dict[str, Any]:
    membership = await require_workspace_membership(member_repo, workspace_id, user_id)
    if not is_manager(membership):
        raise ForbiddenError("Workspace owner or admin role required")
    return membership
