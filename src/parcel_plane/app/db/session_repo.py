"""Supabase-backed SessionRepository: the active workspace per user."""

from __future__ import annotations

from datetime import datetime, timezone

from .supabase_client import SupabaseClient


class SupabaseSessionRepository:
    TABLE = "user_sessions"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get_active_workspace(self, user_id: str) -> str | None:
        rows = await self._client.select(
            self.TABLE,
            filters={"user_id": user_id},
            columns="active_workspace_id",
            limit=1,
        )
        return rows[0].get("active_workspace_id") if rows else None

    async def set_active_workspace(self, user_id: str, workspace_id: str) -> None:
        # Upserts on user_id.
        await self._client.rpc(
            "set_active_workspace",
            {
                "p_user_id": user_id,
                "p_workspace_id": workspace_id,
                "p_updated_at": datetime.now(timezone.utc).isoformat(),
            },
        )
