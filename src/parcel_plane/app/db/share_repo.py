"""Supabase-backed ShareLinkRepository.

Persists share links in ``share_links`` via PostgREST.

Security invariants:
  - Only the SHA-256 token hash is stored; the plaintext token never
    reaches this layer.
  - ``increment_view_count`` calls the ``record_share_link_view`` SQL
    function, a single conditional ``UPDATE ... RETURNING`` (see
    ``parcel_plane/migrations``), so concurrent viewers can never push
    ``view_count`` past ``max_views``.
"""

from __future__ import annotations

from dataclasses import fields
from datetime import datetime
from typing import Any

from ..sharing.model import ShareLink, ShareLinkConflict
from .errors import SupabaseConflictError
from .supabase_client import SupabaseClient

_DATETIME_FIELDS = frozenset({
    "expires_at",
    "revoked_at",
    "first_viewed_at",
    "last_viewed_at",
    "created_at",
    "updated_at",
})
_LINK_FIELDS = frozenset(f.name for f in fields(ShareLink))


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def row_to_link(row: dict[str, Any]) -> ShareLink:
    data = {k: v for k, v in row.items() if k in _LINK_FIELDS}
    for name in _DATETIME_FIELDS & data.keys():
        data[name] = parse_timestamp(data[name])
    data["metadata"] = dict(data.get("metadata") or {})
    data["id"] = str(data["id"])
    return ShareLink(**data)


def link_to_row(link: ShareLink) -> dict[str, Any]:
    row: dict[str, Any] = {}
    for f in fields(ShareLink):
        value = getattr(link, f.name)
        if f.name in _DATETIME_FIELDS and value is not None:
            value = value.isoformat()
        row[f.name] = value
    if not row["id"]:
        del row["id"]
    return row


def _encode_changes(changes: dict[str, Any]) -> dict[str, Any]:
    return {
        k: v.isoformat() if isinstance(v, datetime) else v
        for k, v in changes.items()
    }


class SupabaseShareLinkRepository:
    """ShareLinkRepository backed by the ``share_links`` table."""

    TABLE = "share_links"
    VIEW_FUNCTION = "record_share_link_view"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def _one(self, filters: dict[str, Any]) -> ShareLink | None:
        rows = await self._client.select(self.TABLE, filters=filters, limit=1)
        return row_to_link(rows[0]) if rows else None

    async def insert(self, link: ShareLink) -> ShareLink:
        try:
            rows = await self._client.insert(self.TABLE, link_to_row(link))
        except SupabaseConflictError as exc:
            raise ShareLinkConflict(exc.message) from exc
        return row_to_link(rows[0])

    async def get(self, link_id: str) -> ShareLink | None:
        return await self._one({"id": link_id})

    async def get_by_token_hash(self, token_hash: str) -> ShareLink | None:
        return await self._one({"token_hash": token_hash})

    async def get_by_short_code(self, short_code: str) -> ShareLink | None:
        return await self._one({"short_code": short_code})

    async def short_code_exists(self, short_code: str) -> bool:
        rows = await self._client.select(
            self.TABLE, filters={"short_code": short_code}, columns="id", limit=1,
        )
        return bool(rows)

    async def _list(self, column: str, value: str, include_revoked: bool) -> list[ShareLink]:
        filters: dict[str, Any] = {column: value}
        if not include_revoked:
            filters["revoked_at"] = ("is", None)
        rows = await self._client.select(self.TABLE, filters=filters, order="created_at.desc")
        return [row_to_link(r) for r in rows]

    async def list_for_workspace(
        self, workspace_id: str, *, include_revoked: bool = False,
    ) -> list[ShareLink]:
        return await self._list("workspace_id", workspace_id, include_revoked)

    async def list_for_snapshot(
        self, snapshot_id: str, *, include_revoked: bool = False,
    ) -> list[ShareLink]:
        return await self._list("snapshot_id", snapshot_id, include_revoked)

    async def mark_revoked(
        self, link_id: str, revoked_by: str, revoked_at: datetime,
    ) -> ShareLink | None:
        # Only the first revoke writes; a lost race returns the stored row.
        rows = await self._client.update(
            self.TABLE,
            filters={"id": link_id, "revoked_at": ("is", None)},
            data={
                "revoked_at": revoked_at.isoformat(),
                "revoked_by": revoked_by,
                "updated_at": revoked_at.isoformat(),
            },
        )
        if rows:
            return row_to_link(rows[0])
        return await self.get(link_id)

    async def increment_view_count(
        self, link_id: str, viewed_at: datetime,
    ) -> ShareLink | None:
        result = await self._client.rpc(
            self.VIEW_FUNCTION,
            {"p_link_id": link_id, "p_viewed_at": viewed_at.isoformat()},
        )
        # SETOF returns a list; an empty list means the update matched nothing.
        if isinstance(result, list):
            result = result[0] if result else None
        return row_to_link(result) if result else None

    async def update(self, link_id: str, changes: dict[str, Any]) -> ShareLink | None:
        rows = await self._client.update(
            self.TABLE, filters={"id": link_id}, data=_encode_changes(changes),
        )
        return row_to_link(rows[0]) if rows else None
