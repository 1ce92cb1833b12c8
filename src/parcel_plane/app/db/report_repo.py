"""Supabase-backed ReportRepository (read-only).

Reports and snapshots are written by the report pipeline; share links only
read them to validate creation and to serve the shared snapshot.
"""

from __future__ import annotations

from typing import Any

from .supabase_client import SupabaseClient


class SupabaseReportRepository:
    REPORTS_TABLE = "reports"
    SNAPSHOTS_TABLE = "report_snapshots"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get_snapshot(self, snapshot_id: str) -> dict[str, Any] | None:
        rows = await self._client.select(self.SNAPSHOTS_TABLE, filters={"id": snapshot_id}, limit=1)
        return rows[0] if rows else None

    async def get_report(self, report_id: str) -> dict[str, Any] | None:
        rows = await self._client.select(self.REPORTS_TABLE, filters={"id": report_id}, limit=1)
        return rows[0] if rows else None
