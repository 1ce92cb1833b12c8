"""Supabase-backed WorkspaceRepository.

Workspace rows carry the subscription state used for entitlement checks:
``tier`` (home/studio/portfolio) and ``subscription_status``.  Billing
sync writes both through ``update_subscription``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from .supabase_client import SupabaseClient


class SupabaseWorkspaceRepository:
    TABLE = "workspaces"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get(self, workspace_id: str) -> dict[str, Any] | None:
        rows = await self._client.select(self.TABLE, filters={"id": workspace_id}, limit=1)
        return rows[0] if rows else None

    async def list_by_ids(self, workspace_ids: list[str]) -> list[dict[str, Any]]:
        if not workspace_ids:
            return []
        return await self._client.select(
            self.TABLE,
            filters={"id": ("in", list(workspace_ids))},
            order="created_at.asc",
        )

    async def update_subscription(
        self, workspace_id: str, tier: str, status: str,
    ) -> dict[str, Any] | None:
        rows = await self._client.update(
            self.TABLE,
            filters={"id": workspace_id},
            data={
                "tier": tier,
                "subscription_status": status,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
        )
        return rows[0] if rows else None
