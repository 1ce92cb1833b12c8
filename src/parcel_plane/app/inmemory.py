"""In-memory repository implementations for local development.

These are used when ENVIRONMENT=local and in tests. They satisfy the
protocol interfaces but store everything in dicts (no persistence across
restarts).  Share links and audit events have their own in-memory stores
next to their models (``sharing.model`` and ``audit``).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryWorkspaceRepository:
    def __init__(self) -> None:
        self._workspaces: dict[str, dict[str, Any]] = {}

    async def get(self, workspace_id: str) -> dict[str, Any] | None:
        ws = self._workspaces.get(workspace_id)
        return dict(ws) if ws is not None else None

    async def list_by_ids(self, workspace_ids: list[str]) -> list[dict[str, Any]]:
        return [dict(self._workspaces[w]) for w in workspace_ids if w in self._workspaces]

    async def update_subscription(
        self, workspace_id: str, tier: str, status: str,
    ) -> dict[str, Any] | None:
        ws = self._workspaces.get(workspace_id)
        if ws is None:
            return None
        ws.update({"tier": tier, "subscription_status": status, "updated_at": _now_iso()})
        return dict(ws)

    def add(
        self,
        name: str,
        *,
        workspace_id: str | None = None,
        tier: str = "home",
        subscription_status: str = "active",
        owner_id: str | None = None,
    ) -> dict[str, Any]:
        ws_id = workspace_id or f"ws_{uuid.uuid4().hex[:8]}"
        now = _now_iso()
        workspace = {
            "id": ws_id,
            "name": name,
            "tier": tier,
            "subscription_status": subscription_status,
            "owner_id": owner_id,
            "created_at": now,
            "updated_at": now,
        }
        self._workspaces[ws_id] = workspace
        return dict(workspace)


class InMemoryMemberRepository:
    def __init__(self) -> None:
        self._members: dict[str, list[dict[str, Any]]] = {}

    async def get_membership(self, workspace_id: str, user_id: str) -> dict[str, Any] | None:
        for m in self._members.get(workspace_id, []):
            if m.get("user_id") == user_id:
                return dict(m)
        return None

    async def list_for_user(self, user_id: str) -> list[dict[str, Any]]:
        return [
            dict(m)
            for members in self._members.values()
            for m in members
            if m.get("user_id") == user_id and m.get("status", "active") == "active"
        ]

    def add(
        self,
        workspace_id: str,
        user_id: str,
        role: str = "editor",
        status: str = "active",
    ) -> dict[str, Any]:
        member = {
            "id": f"mem_{uuid.uuid4().hex[:8]}",
            "workspace_id": workspace_id,
            "user_id": user_id,
            "role": role,
            "status": status,
            "created_at": _now_iso(),
        }
        self._members.setdefault(workspace_id, []).append(member)
        return dict(member)


class InMemoryReportRepository:
    def __init__(self) -> None:
        self._reports: dict[str, dict[str, Any]] = {}
        self._snapshots: dict[str, dict[str, Any]] = {}

    async def get_snapshot(self, snapshot_id: str) -> dict[str, Any] | None:
        snap = self._snapshots.get(snapshot_id)
        return dict(snap) if snap is not None else None

    async def get_report(self, report_id: str) -> dict[str, Any] | None:
        report = self._reports.get(report_id)
        return dict(report) if report is not None else None

    def add_report(
        self,
        workspace_id: str,
        title: str = "Parcel report",
        *,
        report_id: str | None = None,
    ) -> dict[str, Any]:
        rid = report_id or f"rpt_{uuid.uuid4().hex[:8]}"
        report = {
            "id": rid,
            "workspace_id": workspace_id,
            "title": title,
            "created_at": _now_iso(),
        }
        self._reports[rid] = report
        return dict(report)

    def add_snapshot(
        self,
        workspace_id: str,
        report_id: str | None = None,
        data: dict[str, Any] | None = None,
        *,
        snapshot_id: str | None = None,
    ) -> dict[str, Any]:
        sid = snapshot_id or f"snap_{uuid.uuid4().hex[:8]}"
        snapshot = {
            "id": sid,
            "workspace_id": workspace_id,
            "report_id": report_id,
            "data": dict(data or {}),
            "created_at": _now_iso(),
        }
        self._snapshots[sid] = snapshot
        return dict(snapshot)


class InMemorySessionRepository:
    def __init__(self) -> None:
        self._active: dict[str, str] = {}

    async def get_active_workspace(self, user_id: str) -> str | None:
        return self._active.get(user_id)

    async def set_active_workspace(self, user_id: str, workspace_id: str) -> None:
        self._active[user_id] = workspace_id
