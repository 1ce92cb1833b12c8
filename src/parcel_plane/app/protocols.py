"""Repository protocol interfaces for dependency injection.

These protocols define the contracts that concrete implementations
(InMemory for local dev and tests, Supabase for hosted environments) must
satisfy.  Services and routes depend only on these, never on a specific
database client.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .audit import AuditEvent
    from .sharing.model import ShareLink


@runtime_checkable
class WorkspaceRepository(Protocol):
    """Workspace rows, including subscription tier and status."""

    async def get(self, workspace_id: str) -> dict[str, Any] | None: ...
    async def list_by_ids(self, workspace_ids: list[str]) -> list[dict[str, Any]]: ...
    async def update_subscription(
        self, workspace_id: str, tier: str, status: str,
    ) -> dict[str, Any] | None: ...


@runtime_checkable
class MemberRepository(Protocol):
    """Workspace membership lookups."""

    async def get_membership(self, workspace_id: str, user_id: str) -> dict[str, Any] | None: ...
    async def list_for_user(self, user_id: str) -> list[dict[str, Any]]: ...


@runtime_checkable
class ReportRepository(Protocol):
    """Read access to reports and their frozen snapshots."""

    async def get_snapshot(self, snapshot_id: str) -> dict[str, Any] | None: ...
    async def get_report(self, report_id: str) -> dict[str, Any] | None: ...


@runtime_checkable
class SessionRepository(Protocol):
    """Active workspace selection per user."""

    async def get_active_workspace(self, user_id: str) -> str | None: ...
    async def set_active_workspace(self, user_id: str, workspace_id: str) -> None: ...


@runtime_checkable
class ShareLinkRepository(Protocol):
    """Share link persistence.

    ``increment_view_count`` must be a single atomic conditional update at
    the storage layer: it increments only while the link is unrevoked and
    below ``max_views``, and returns None otherwise.
    """

    async def insert(self, link: ShareLink) -> ShareLink: ...
    async def get(self, link_id: str) -> ShareLink | None: ...
    async def get_by_token_hash(self, token_hash: str) -> ShareLink | None: ...
    async def get_by_short_code(self, short_code: str) -> ShareLink | None: ...
    async def short_code_exists(self, short_code: str) -> bool: ...
    async def list_for_workspace(
        self, workspace_id: str, *, include_revoked: bool = False,
    ) -> list[ShareLink]: ...
    async def list_for_snapshot(
        self, snapshot_id: str, *, include_revoked: bool = False,
    ) -> list[ShareLink]: ...
    async def mark_revoked(
        self, link_id: str, revoked_by: str, revoked_at: datetime,
    ) -> ShareLink | None: ...
    async def increment_view_count(
        self, link_id: str, viewed_at: datetime,
    ) -> ShareLink | None: ...
    async def update(self, link_id: str, changes: dict[str, Any]) -> ShareLink | None: ...


@runtime_checkable
class AuditLog(Protocol):
    """Append-only audit storage.

    ``append`` raises ``DuplicateAuditEvent`` when an event with the same
    (workspace_id, event_type, request_id) already exists.
    """

    async def append(self, event: AuditEvent) -> AuditEvent: ...
    async def list_for_workspace(self, workspace_id: str, limit: int = 50) -> list[AuditEvent]: ...
    async def list_for_resource(self, resource_id: str, limit: int = 50) -> list[AuditEvent]: ...
