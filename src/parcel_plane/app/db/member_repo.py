"""Supabase-backed MemberRepository.

Only ``status = 'active'`` memberships grant access; pending invites and
removed members are filtered out at the query.
"""

from __future__ import annotations

from typing import Any

from .supabase_client import SupabaseClient


class SupabaseMemberRepository:
    TABLE = "workspace_members"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get_membership(
        self, workspace_id: str, user_id: str
    ) -> dict[str, Any] | None:
        rows = await self._client.select(
            self.TABLE,
            filters={
                "workspace_id": workspace_id,
                "user_id": user_id,
                "status": "active",
            },
            limit=1,
        )
        return rows[0] if rows else None

    async def list_for_user(self, user_id: str) -> list[dict[str, Any]]:
        return await self._client.select(
            self.TABLE,
            filters={"user_id": user_id, "status": "active"},
            order="created_at.asc",
        )
