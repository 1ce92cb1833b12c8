"""Tests for the PostgREST client and Supabase-backed repositories.

Uses httpx.MockTransport so every request is inspected without network I/O.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest

from parcel_plane.app.audit import SHARE_LINK_CREATED, AuditEvent, DuplicateAuditEvent
from parcel_plane.app.db import build_supabase_repositories
from parcel_plane.app.db.audit_log import sanitize_metadata
from parcel_plane.app.db.errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
)
from parcel_plane.app.db.share_repo import link_to_row, row_to_link
from parcel_plane.app.db.supabase_client import (
    PostgrestFilter,
    SupabaseClient,
    encode_filter_value,
    filters_to_params,
)
from parcel_plane.app.sharing.model import ShareLink, ShareLinkConflict

SUPABASE_URL = "https://proj.supabase.co"
SERVICE_KEY = "service-role-key"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _link_row(**overrides) -> dict:
    row = {
        "id": "b3c1a2d4-0000-4000-8000-000000000001",
        "workspace_id": "ws_1",
        "snapshot_id": "snap_1",
        "report_id": None,
        "created_by": "user_1",
        "token_hash": "f" * 64,
        "short_code": "abcd1234",
        "expires_at": "2026-03-08T12:00:00+00:00",
        "max_views": 3,
        "view_count": 1,
        "revoked_at": None,
        "revoked_by": None,
        "access_role": "viewer",
        "requires_auth": False,
        "recipient_email": None,
        "recipient_contact_id": None,
        "metadata": {},
        "first_viewed_at": "2026-03-01T12:30:00Z",
        "last_viewed_at": "2026-03-01T12:30:00Z",
        "created_at": "2026-03-01T12:00:00+00:00",
        "updated_at": None,
    }
    row.update(overrides)
    return row


class _Recorder:
    """MockTransport handler that records requests and replays responses."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.requests: list[httpx.Request] = []
        self._responses = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._responses:
            return self._responses.pop(0)
        return httpx.Response(200, json=[])

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def body(self, index: int = -1):
        return json.loads(self.requests[index].content)


def _repos(recorder: _Recorder):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return build_supabase_repositories(SUPABASE_URL, SERVICE_KEY, http_client=http_client)


# =====================================================================
# Filters and client
# =====================================================================


class TestFilters:
    def test_mapping_defaults_to_eq(self):
        assert filters_to_params({"id": "abc"}) == {"id": "eq.abc"}

    def test_mapping_with_operator(self):
        params = filters_to_params({"revoked_at": ("is", None), "id": ("in", ["a", "b"])})
        assert params == {"revoked_at": "is.null", "id": 'in.("a","b")'}

    def test_filter_objects(self):
        params = filters_to_params([PostgrestFilter("view_count", "lt", 3)])
        assert params == {"view_count": "lt.3"}

    def test_encode_values(self):
        assert encode_filter_value("eq", True) == "true"
        assert encode_filter_value("is", False) == "false"
        with pytest.raises(ValueError):
            encode_filter_value("eq", None)
        with pytest.raises(ValueError):
            encode_filter_value("in", "abc")


class TestSupabaseClient:
    @pytest.mark.asyncio
    async def test_select_sends_service_headers(self):
        recorder = _Recorder(httpx.Response(200, json=[{"id": "1"}]))
        client = SupabaseClient(
            supabase_url=SUPABASE_URL + "/",
            service_role_key=SERVICE_KEY,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(recorder)),
        )

        rows = await client.select("workspaces", {"id": "1"}, limit=1, order="created_at.asc")

        assert rows == [{"id": "1"}]
        request = recorder.last
        assert request.method == "GET"
        assert str(request.url).startswith("https://proj.supabase.co/rest/v1/workspaces?")
        assert request.headers["apikey"] == SERVICE_KEY
        assert request.headers["authorization"] == f"Bearer {SERVICE_KEY}"
        assert request.url.params["id"] == "eq.1"
        assert request.url.params["limit"] == "1"
        assert request.url.params["order"] == "created_at.asc"
        assert request.url.params["select"] == "*"

    @pytest.mark.asyncio
    async def test_insert_requests_representation(self):
        recorder = _Recorder(httpx.Response(201, json=[{"id": "1"}]))
        client = SupabaseClient(
            supabase_url=SUPABASE_URL,
            service_role_key=SERVICE_KEY,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(recorder)),
        )
        await client.insert("audit_events", {"event_type": "x"})
        assert recorder.last.headers["prefer"] == "return=representation"
        assert recorder.body() == {"event_type": "x"}

    @pytest.mark.asyncio
    async def test_update_requires_filters(self):
        client = SupabaseClient(supabase_url=SUPABASE_URL, service_role_key=SERVICE_KEY)
        with pytest.raises(ValueError):
            await client.update("share_links", None, {"view_count": 2})

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "payload", "error_cls"),
        [
            (401, {"message": "JWT expired"}, SupabaseAuthError),
            (404, {"message": "relation does not exist"}, SupabaseNotFoundError),
            (409, {"message": "duplicate key", "code": "23505"}, SupabaseConflictError),
            (400, {"message": "duplicate key", "code": "23505"}, SupabaseConflictError),
            (500, {"message": "boom"}, SupabaseError),
        ],
    )
    async def test_error_mapping(self, status, payload, error_cls):
        recorder = _Recorder(httpx.Response(status, json=payload))
        client = SupabaseClient(
            supabase_url=SUPABASE_URL,
            service_role_key=SERVICE_KEY,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(recorder)),
        )
        with pytest.raises(error_cls) as exc_info:
            await client.select("share_links")
        assert exc_info.value.status_code == status
        assert SERVICE_KEY not in str(exc_info.value)

    def test_requires_credentials(self):
        with pytest.raises(ValueError):
            SupabaseClient(supabase_url="", service_role_key=SERVICE_KEY)
        with pytest.raises(ValueError):
            SupabaseClient(supabase_url=SUPABASE_URL, service_role_key="")


# =====================================================================
# Share link repository
# =====================================================================


class TestRowMapping:
    def test_row_to_link_parses_timestamps(self):
        link = row_to_link(_link_row())
        assert link.expires_at == datetime(2026, 3, 8, 12, 0, tzinfo=timezone.utc)
        assert link.first_viewed_at.tzinfo is not None
        assert link.view_count == 1

    def test_link_to_row_omits_empty_id(self):
        link = ShareLink(
            id="",
            workspace_id="ws_1",
            snapshot_id="snap_1",
            created_by="user_1",
            token_hash="f" * 64,
            short_code="abcd1234",
            expires_at=NOW,
            created_at=NOW,
        )
        row = link_to_row(link)
        assert "id" not in row
        assert row["expires_at"] == NOW.isoformat()
        assert row["token_hash"] == "f" * 64


class TestSupabaseShareLinkRepository:
    @pytest.mark.asyncio
    async def test_get_by_token_hash(self):
        recorder = _Recorder(httpx.Response(200, json=[_link_row()]))
        repo = _repos(recorder).share_repo

        link = await repo.get_by_token_hash("f" * 64)

        assert link.short_code == "abcd1234"
        assert recorder.last.url.path == "/rest/v1/share_links"
        assert recorder.last.url.params["token_hash"] == "eq." + "f" * 64
        assert recorder.last.url.params["limit"] == "1"

    @pytest.mark.asyncio
    async def test_missing_returns_none(self):
        repo = _repos(_Recorder(httpx.Response(200, json=[]))).share_repo
        assert await repo.get("missing") is None

    @pytest.mark.asyncio
    async def test_insert_conflict_becomes_share_link_conflict(self):
        recorder = _Recorder(httpx.Response(409, json={"code": "23505", "message": "duplicate key"}))
        repo = _repos(recorder).share_repo
        with pytest.raises(ShareLinkConflict):
            await repo.insert(row_to_link(_link_row(id="x")))

    @pytest.mark.asyncio
    async def test_increment_uses_atomic_rpc(self):
        recorder = _Recorder(httpx.Response(200, json=[_link_row(view_count=2)]))
        repo = _repos(recorder).share_repo

        link = await repo.increment_view_count("link-1", NOW)

        assert link.view_count == 2
        request = recorder.last
        assert request.method == "POST"
        assert request.url.path == "/rest/v1/rpc/record_share_link_view"
        assert recorder.body() == {"p_link_id": "link-1", "p_viewed_at": NOW.isoformat()}

    @pytest.mark.asyncio
    async def test_increment_refused_returns_none(self):
        repo = _repos(_Recorder(httpx.Response(200, json=[]))).share_repo
        assert await repo.increment_view_count("link-1", NOW) is None

    @pytest.mark.asyncio
    async def test_mark_revoked_is_conditional(self):
        revoked = _link_row(revoked_at=NOW.isoformat(), revoked_by="user_1")
        recorder = _Recorder(httpx.Response(200, json=[revoked]))
        repo = _repos(recorder).share_repo

        link = await repo.mark_revoked("link-1", "user_1", NOW)

        assert link.is_revoked
        request = recorder.last
        assert request.method == "PATCH"
        assert request.url.params["id"] == "eq.link-1"
        assert request.url.params["revoked_at"] == "is.null"

    @pytest.mark.asyncio
    async def test_mark_revoked_lost_race_reads_stored_row(self):
        already = _link_row(revoked_at="2026-02-01T00:00:00+00:00", revoked_by="user_2")
        recorder = _Recorder(
            httpx.Response(200, json=[]),
            httpx.Response(200, json=[already]),
        )
        repo = _repos(recorder).share_repo

        link = await repo.mark_revoked("link-1", "user_1", NOW)

        assert link.revoked_by == "user_2"
        assert [r.method for r in recorder.requests] == ["PATCH", "GET"]

    @pytest.mark.asyncio
    async def test_list_excludes_revoked(self):
        recorder = _Recorder(httpx.Response(200, json=[_link_row()]))
        repo = _repos(recorder).share_repo

        links = await repo.list_for_workspace("ws_1")

        assert len(links) == 1
        params = recorder.last.url.params
        assert params["workspace_id"] == "eq.ws_1"
        assert params["revoked_at"] == "is.null"
        assert params["order"] == "created_at.desc"


# =====================================================================
# Audit log
# =====================================================================


class TestSupabaseAuditLog:
    def test_sanitize_metadata_redacts_credential_keys(self):
        cleaned = sanitize_metadata({
            "token": "k3Yq0c9ZTtv2Wm6XbJx1pLr8NsAaFh4EoUiGdVy5CwM",
            "nested": {"Authorization": "Bearer x"},
            "view_count": 2,
        })
        assert cleaned["token"] == "[REDACTED]"
        assert cleaned["nested"]["Authorization"] == "[REDACTED]"
        assert cleaned["view_count"] == 2

    def test_sanitize_metadata_keeps_long_identifiers(self):
        metadata = {
            "snapshot_id": "550e8400-e29b-41d4-a716-446655440000",
            "feature": "share_collaboration_with_recipients",
            "path": "/workspaces/ws_portfolio_enterprise/reports",
        }
        assert sanitize_metadata(metadata) == metadata

    @pytest.mark.asyncio
    async def test_append_stores_snapshot_uuid_unchanged(self):
        snapshot_id = "550e8400-e29b-41d4-a716-446655440000"
        stored = {
            "id": 18,
            "workspace_id": "ws_1",
            "event_type": SHARE_LINK_CREATED,
            "user_id": "user_1",
            "resource_id": "link-1",
            "metadata": {"snapshot_id": snapshot_id, "token_prefix": "abcdefgh..."},
            "request_id": None,
            "created_at": "2026-03-01T12:00:00+00:00",
        }
        recorder = _Recorder(httpx.Response(201, json=[stored]))
        audit_log = _repos(recorder).audit_log

        event = await audit_log.append(AuditEvent(
            workspace_id="ws_1",
            event_type=SHARE_LINK_CREATED,
            user_id="user_1",
            resource_id="link-1",
            metadata={"snapshot_id": snapshot_id, "token_prefix": "abcdefgh..."},
        ))

        assert recorder.body()["metadata"]["snapshot_id"] == snapshot_id
        assert event.metadata["snapshot_id"] == snapshot_id

    @pytest.mark.asyncio
    async def test_append(self):
        stored = {
            "id": 17,
            "workspace_id": "ws_1",
            "event_type": SHARE_LINK_CREATED,
            "user_id": "user_1",
            "resource_id": "link-1",
            "metadata": {"token_prefix": "abcdefgh..."},
            "request_id": "req-1",
            "created_at": "2026-03-01T12:00:00+00:00",
        }
        recorder = _Recorder(httpx.Response(201, json=[stored]))
        audit_log = _repos(recorder).audit_log

        event = await audit_log.append(AuditEvent(
            workspace_id="ws_1",
            event_type=SHARE_LINK_CREATED,
            user_id="user_1",
            resource_id="link-1",
            request_id="req-1",
            metadata={"token_prefix": "abcdefgh..."},
        ))

        assert event.id == "17"
        assert recorder.last.url.path == "/rest/v1/audit_events"
        assert recorder.body()["request_id"] == "req-1"

    @pytest.mark.asyncio
    async def test_duplicate_request_id(self):
        recorder = _Recorder(httpx.Response(409, json={"code": "23505", "message": "duplicate key"}))
        audit_log = _repos(recorder).audit_log
        with pytest.raises(DuplicateAuditEvent):
            await audit_log.append(AuditEvent(
                workspace_id="ws_1", event_type=SHARE_LINK_CREATED, request_id="req-1",
            ))


# =====================================================================
# Workspace, member and session repositories
# =====================================================================


class TestWorkspaceRepositories:
    @pytest.mark.asyncio
    async def test_list_by_ids_uses_in_filter(self):
        recorder = _Recorder(httpx.Response(200, json=[{"id": "ws_1"}]))
        repo = _repos(recorder).workspace_repo

        rows = await repo.list_by_ids(["ws_1", "ws_2"])

        assert rows == [{"id": "ws_1"}]
        assert recorder.last.url.params["id"] == 'in.("ws_1","ws_2")'

    @pytest.mark.asyncio
    async def test_list_by_ids_empty_skips_request(self):
        recorder = _Recorder()
        assert await _repos(recorder).workspace_repo.list_by_ids([]) == []
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_update_subscription(self):
        recorder = _Recorder(httpx.Response(200, json=[{"id": "ws_1", "tier": "studio"}]))
        row = await _repos(recorder).workspace_repo.update_subscription("ws_1", "studio", "active")

        assert row["tier"] == "studio"
        body = recorder.body()
        assert body["tier"] == "studio"
        assert body["subscription_status"] == "active"

    @pytest.mark.asyncio
    async def test_membership_filters_active(self):
        recorder = _Recorder(httpx.Response(200, json=[]))
        assert await _repos(recorder).member_repo.get_membership("ws_1", "user_1") is None
        params = recorder.last.url.params
        assert params["status"] == "eq.active"
        assert params["user_id"] == "eq.user_1"

    @pytest.mark.asyncio
    async def test_set_active_workspace_rpc(self):
        recorder = _Recorder(httpx.Response(204))
        await _repos(recorder).session_repo.set_active_workspace("user_1", "ws_1")

        assert recorder.last.url.path == "/rest/v1/rpc/set_active_workspace"
        body = recorder.body()
        assert body["p_user_id"] == "user_1"
        assert body["p_workspace_id"] == "ws_1"
