"""Supabase-backed AuditLog.

Writes audit events to ``audit_events`` via PostgREST.  A partial unique
index on (workspace_id, event_type, request_id) makes replays of the same
request conflict; the conflict surfaces as ``DuplicateAuditEvent`` and the
emitter drops it silently.

Metadata is sanitized before persistence: values under credential keys are
replaced.  Other values are stored unchanged.
"""

from __future__ import annotations

from typing import Any

from ..audit import AuditEvent, DuplicateAuditEvent
from .errors import SupabaseConflictError
from .share_repo import parse_timestamp
from .supabase_client import SupabaseClient

_SENSITIVE_KEYS = frozenset({
    "authorization",
    "apikey",
    "service_role_key",
    "token",
    "share_token",
    "secret",
    "password",
})


def sanitize_metadata(payload: dict[str, Any]) -> dict[str, Any]:
    sanitized: dict[str, Any] = {}
    for key, value in payload.items():
        if key.lower() in _SENSITIVE_KEYS:
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_metadata(value)
        else:
            sanitized[key] = value
    return sanitized


def row_to_event(row: dict[str, Any]) -> AuditEvent:
    return AuditEvent(
        id=str(row["id"]),
        workspace_id=row["workspace_id"],
        event_type=row["event_type"],
        user_id=row.get("user_id"),
        resource_id=row.get("resource_id"),
        metadata=dict(row.get("metadata") or {}),
        request_id=row.get("request_id"),
        created_at=parse_timestamp(row["created_at"]),
    )


class SupabaseAuditLog:
    TABLE = "audit_events"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def append(self, event: AuditEvent) -> AuditEvent:
        row = {
            "workspace_id": event.workspace_id,
            "event_type": event.event_type,
            "user_id": event.user_id,
            "resource_id": event.resource_id,
            "metadata": sanitize_metadata(event.metadata),
            "request_id": event.request_id,
            "created_at": event.created_at.isoformat(),
        }
        try:
            rows = await self._client.insert(self.TABLE, row)
        except SupabaseConflictError as exc:
            raise DuplicateAuditEvent(event.idempotency_key) from exc
        return row_to_event(rows[0])

    async def list_for_workspace(self, workspace_id: str, limit: int = 50) -> list[AuditEvent]:
        rows = await self._client.select(
            self.TABLE,
            filters={"workspace_id": workspace_id},
            order="created_at.desc",
            limit=limit,
        )
        return [row_to_event(r) for r in rows]

    async def list_for_resource(self, resource_id: str, limit: int = 50) -> list[AuditEvent]:
        rows = await self._client.select(
            self.TABLE,
            filters={"resource_id": resource_id},
            order="created_at.desc",
            limit=limit,
        )
        return [row_to_event(r) for r in rows]
