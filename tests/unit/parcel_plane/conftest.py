"""Shared fixtures for parcel-plane unit tests.

The seeded world has two workspaces:

  ws_home       home tier       owner_1 (owner), member_1 (editor)
  ws_portfolio  portfolio tier  owner_1 (owner), member_1 (editor)

``outsider`` belongs to neither.  ``snap_home`` (report ``rpt_home``) lives
in ws_home and ``snap_portfolio`` in ws_portfolio.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from parcel_plane.app.audit import AuditEmitter, InMemoryAuditLog
from parcel_plane.app.inmemory import (
    InMemoryMemberRepository,
    InMemoryReportRepository,
    InMemorySessionRepository,
    InMemoryWorkspaceRepository,
)
from parcel_plane.app.main import create_app
from parcel_plane.app.settings import PlatformSettings
from parcel_plane.app.sharing.model import InMemoryShareLinkRepository
from parcel_plane.app.sharing.store import ShareLinkStore

JWT_SECRET = "parcel-plane-unit-test-secret-0123456789"
PUBLIC_URL = "https://parcels.test"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class World:
    workspaces: InMemoryWorkspaceRepository
    members: InMemoryMemberRepository
    reports: InMemoryReportRepository
    sessions: InMemorySessionRepository
    share_repo: InMemoryShareLinkRepository
    audit_log: InMemoryAuditLog
    clock: FakeClock


def make_token(user_id: str, *, email: str | None = None, secret: str = JWT_SECRET, **claims) -> str:
    payload = {
        "sub": user_id,
        "aud": "authenticated",
        "exp": int(time.time()) + 3600,
        "email": email or f"{user_id}@example.com",
        "role": "authenticated",
        **claims,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def bearer(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def world(clock) -> World:
    workspaces = InMemoryWorkspaceRepository()
    members = InMemoryMemberRepository()
    reports = InMemoryReportRepository()

    workspaces.add("Home Workspace", workspace_id="ws_home", tier="home", owner_id="owner_1")
    workspaces.add(
        "Portfolio Workspace", workspace_id="ws_portfolio", tier="portfolio", owner_id="owner_1",
    )
    for ws_id in ("ws_home", "ws_portfolio"):
        members.add(ws_id, "owner_1", role="owner")
        members.add(ws_id, "member_1", role="editor")

    reports.add_report("ws_home", "12 Elm St parcel report", report_id="rpt_home")
    reports.add_snapshot("ws_home", "rpt_home", {"apn": "001-234-56"}, snapshot_id="snap_home")
    reports.add_snapshot("ws_portfolio", None, {"apn": "987-654-32"}, snapshot_id="snap_portfolio")

    return World(
        workspaces=workspaces,
        members=members,
        reports=reports,
        sessions=InMemorySessionRepository(),
        share_repo=InMemoryShareLinkRepository(),
        audit_log=InMemoryAuditLog(),
        clock=clock,
    )


@pytest.fixture
def store(world) -> ShareLinkStore:
    return ShareLinkStore(
        world.share_repo,
        world.workspaces,
        world.members,
        world.reports,
        clock=world.clock,
    )


@pytest.fixture
def emitter(world) -> AuditEmitter:
    return AuditEmitter(world.audit_log)


@pytest.fixture
def settings() -> PlatformSettings:
    return PlatformSettings(supabase_jwt_secret=JWT_SECRET, public_url=PUBLIC_URL)


@pytest.fixture
def app(world, settings):
    return create_app(
        settings,
        workspace_repo=world.workspaces,
        member_repo=world.members,
        report_repo=world.reports,
        session_repo=world.sessions,
        share_repo=world.share_repo,
        audit_log=world.audit_log,
        clock=world.clock,
    )


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def mint_token():
    return make_token


@pytest.fixture
def auth():
    """``auth("member_1")`` -> Authorization header for that user."""
    return bearer
