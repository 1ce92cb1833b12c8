"""Tests for plans, entitlements, subscription sync, account and audit endpoints."""

from __future__ import annotations

import pytest

from parcel_plane.app.audit import FEATURE_BLOCKED, SUBSCRIPTION_CHANGED


# =====================================================================
# Plans and entitlements
# =====================================================================


class TestPlans:
    @pytest.mark.asyncio
    async def test_plans_are_public(self, client):
        resp = await client.get("/plans")
        assert resp.status_code == 200
        tiers = [p["tier"] for p in resp.json()["plans"]]
        assert tiers == ["home", "studio", "portfolio"]


class TestWorkspaceEntitlements:
    @pytest.mark.asyncio
    async def test_member_sees_capability_map(self, client, auth):
        resp = await client.get("/workspaces/ws_home/entitlements", headers=auth("member_1"))

        assert resp.status_code == 200
        body = resp.json()
        assert body["tier"] == "home"
        assert body["effective_tier"] == "home"
        assert body["subscription_status"] == "active"
        assert body["entitlements"]["share_basic"] is True
        assert body["entitlements"]["share_collaboration"] is False

    @pytest.mark.asyncio
    async def test_outsider_forbidden(self, client, auth):
        resp = await client.get("/workspaces/ws_home/entitlements", headers=auth("outsider"))
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_and_foreign_workspaces_look_alike(self, client, auth):
        missing = await client.get("/workspaces/ws_missing/entitlements", headers=auth("outsider"))
        foreign = await client.get("/workspaces/ws_home/entitlements", headers=auth("outsider"))
        assert missing.status_code == foreign.status_code == 403

    @pytest.mark.asyncio
    async def test_single_capability_hides_unknown_workspace(self, client, auth):
        missing = await client.get(
            "/workspaces/ws_missing/entitlements/export_data", headers=auth("outsider"),
        )
        foreign = await client.get(
            "/workspaces/ws_home/entitlements/export_data", headers=auth("outsider"),
        )
        assert missing.status_code == foreign.status_code == 403

    @pytest.mark.asyncio
    async def test_requires_auth(self, client):
        resp = await client.get("/workspaces/ws_home/entitlements")
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_single_capability_denied(self, client, auth):
        resp = await client.get(
            "/workspaces/ws_home/entitlements/export_data", headers=auth("member_1"),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["enabled"] is False
        assert body["reason"] == "tier_insufficient"
        assert body["upgrade"]["required_tier"] == "portfolio"

    @pytest.mark.asyncio
    async def test_single_capability_allowed(self, client, auth):
        resp = await client.get(
            "/workspaces/ws_portfolio/entitlements/export_data", headers=auth("member_1"),
        )
        body = resp.json()
        assert body["enabled"] is True
        assert "upgrade" not in body

    @pytest.mark.asyncio
    async def test_unknown_capability(self, client, auth):
        resp = await client.get(
            "/workspaces/ws_home/entitlements/teleport", headers=auth("member_1"),
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "unknown_feature"


# =====================================================================
# Subscription sync
# =====================================================================


class TestSubscriptionUpdate:
    @pytest.mark.asyncio
    async def test_owner_upgrade_unlocks_collaboration_immediately(self, client, auth, world):
        payload = {"snapshot_id": "snap_home", "workspace_id": "ws_home"}
        denied = await client.post("/share-links/create", json=payload, headers=auth("member_1"))
        assert denied.status_code == 402

        resp = await client.put(
            "/workspaces/ws_home/subscription",
            json={"tier": "portfolio", "status": "active"},
            headers=auth("owner_1"),
        )
        assert resp.status_code == 200
        assert resp.json() == {
            "workspace_id": "ws_home",
            "tier": "portfolio",
            "subscription_status": "active",
        }

        allowed = await client.post("/share-links/create", json=payload, headers=auth("member_1"))
        assert allowed.status_code == 201
        assert len(world.audit_log.find(SUBSCRIPTION_CHANGED, "ws_home")) == 1

    @pytest.mark.asyncio
    async def test_past_due_blocks_premium(self, client, auth):
        await client.put(
            "/workspaces/ws_portfolio/subscription",
            json={"tier": "portfolio", "status": "past_due"},
            headers=auth("owner_1"),
        )
        resp = await client.post(
            "/share-links/create",
            json={"snapshot_id": "snap_portfolio", "workspace_id": "ws_portfolio"},
            headers=auth("member_1"),
        )
        assert resp.status_code == 402
        assert resp.json()["reason"] == "subscription_inactive"

        entitlements = await client.get(
            "/workspaces/ws_portfolio/entitlements", headers=auth("member_1"),
        )
        assert entitlements.json()["effective_tier"] == "home"

    @pytest.mark.asyncio
    async def test_editor_forbidden(self, client, auth):
        resp = await client.put(
            "/workspaces/ws_home/subscription", json={"tier": "portfolio"}, headers=auth("member_1"),
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_invalid_tier(self, client, auth):
        resp = await client.put(
            "/workspaces/ws_home/subscription", json={"tier": "enterprise"}, headers=auth("owner_1"),
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_tier"


# =====================================================================
# Account context
# =====================================================================


class TestAccountRoutes:
    @pytest.mark.asyncio
    async def test_context(self, client, auth):
        resp = await client.get("/account/context", headers=auth("member_1"))

        assert resp.status_code == 200
        body = resp.json()
        assert body["user"] == {"id": "member_1", "email": "member_1@example.com"}
        assert {ws["id"] for ws in body["workspaces"]} == {"ws_home", "ws_portfolio"}
        assert body["active_workspace"]["id"] == body["active_workspace_id"]

    @pytest.mark.asyncio
    async def test_switch(self, client, auth):
        resp = await client.post(
            "/account/workspace/switch",
            json={"workspace_id": "ws_portfolio"},
            headers=auth("member_1"),
        )
        assert resp.status_code == 200
        assert resp.json()["active_workspace_id"] == "ws_portfolio"

        context = await client.get("/account/context", headers=auth("member_1"))
        assert context.json()["active_workspace"]["tier"] == "portfolio"

    @pytest.mark.asyncio
    async def test_switch_requires_membership(self, client, auth):
        resp = await client.post(
            "/account/workspace/switch",
            json={"workspace_id": "ws_home"},
            headers=auth("outsider"),
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_context_requires_auth(self, client):
        assert (await client.get("/account/context")).status_code == 401


# =====================================================================
# Audit endpoints
# =====================================================================


class TestAuditRoutes:
    @pytest.mark.asyncio
    async def test_audit_log_needs_portfolio(self, client, auth):
        resp = await client.get("/workspaces/ws_home/audit-events", headers=auth("owner_1"))
        assert resp.status_code == 402
        assert resp.json()["feature"] == "view_audit_logs"

    @pytest.mark.asyncio
    async def test_audit_log_lists_workspace_events(self, client, auth):
        await client.post(
            "/share-links",
            json={"snapshot_id": "snap_portfolio", "workspace_id": "ws_portfolio"},
            headers=auth("member_1"),
        )
        resp = await client.get(
            "/workspaces/ws_portfolio/audit-events?limit=10", headers=auth("owner_1"),
        )
        assert resp.status_code == 200
        events = resp.json()["events"]
        assert [e["event_type"] for e in events] == ["share_link.created"]
        assert all(e["workspace_id"] == "ws_portfolio" for e in events)

    @pytest.mark.asyncio
    async def test_audit_log_requires_membership(self, client, auth):
        resp = await client.get("/workspaces/ws_portfolio/audit-events", headers=auth("outsider"))
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_audit_log_hides_unknown_workspace(self, client, auth):
        resp = await client.get("/workspaces/ws_nope/audit-events", headers=auth("outsider"))
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_blocked_access_recorded_for_member(self, client, auth, world):
        resp = await client.post(
            "/audit/blocked-access",
            json={"workspace_id": "ws_home", "feature": "export_data", "path": "/reports"},
            headers=auth("member_1"),
        )
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

        (event,) = world.audit_log.find(FEATURE_BLOCKED, "ws_home")
        assert event.resource_id == "export_data"
        assert event.metadata["path"] == "/reports"

    @pytest.mark.asyncio
    async def test_blocked_access_ignored_for_anonymous_and_outsiders(self, client, auth, world):
        body = {"workspace_id": "ws_home", "feature": "export_data"}
        anon = await client.post("/audit/blocked-access", json=body)
        outsider = await client.post("/audit/blocked-access", json=body, headers=auth("outsider"))
        junk = await client.post(
            "/audit/blocked-access", content=b"not json", headers=auth("member_1"),
        )

        assert anon.status_code == outsider.status_code == junk.status_code == 200
        assert world.audit_log.find(FEATURE_BLOCKED) == []
