"""Tests for the share-link model, token helpers and in-memory repository."""

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone

import pytest

from parcel_plane.app.sharing.model import (
    SHORT_CODE_LENGTH,
    InMemoryShareLinkRepository,
    ShareLink,
    ShareLinkConflict,
    generate_share_token,
    generate_short_code,
    hash_token,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _link(**overrides) -> ShareLink:
    fields = dict(
        id="",
        workspace_id="ws_1",
        snapshot_id="snap_1",
        created_by="user_1",
        token_hash=hash_token("token-1"),
        short_code="abcd1234",
        created_at=NOW,
    )
    fields.update(overrides)
    return ShareLink(**fields)


# =====================================================================
# Token helpers
# =====================================================================


class TestTokens:
    def test_tokens_are_unique_and_url_safe(self):
        tokens = {generate_share_token() for _ in range(50)}
        assert len(tokens) == 50
        for token in tokens:
            assert len(token) >= 43
            assert all(c.isalnum() or c in "-_" for c in token)

    def test_short_code_alphabet_and_length(self):
        code = generate_short_code()
        assert len(code) == SHORT_CODE_LENGTH
        assert code == code.lower()
        assert code.isalnum()

    def test_hash_is_sha256_hex(self):
        assert hash_token("abc") == hashlib.sha256(b"abc").hexdigest()
        assert hash_token("abc") != hash_token("abd")


# =====================================================================
# ShareLink state
# =====================================================================


class TestShareLinkState:
    def test_fresh_link_is_active(self):
        link = _link(expires_at=NOW + timedelta(days=1))
        assert link.is_active(NOW)

    def test_expiry_boundary_is_inclusive(self):
        link = _link(expires_at=NOW)
        assert link.is_expired(NOW)
        assert not link.is_expired(NOW - timedelta(seconds=1))

    def test_no_expiry_never_expires(self):
        link = _link(expires_at=None)
        assert not link.is_expired(NOW + timedelta(days=3650))

    def test_views_exhausted(self):
        assert _link(max_views=2, view_count=2).views_exhausted
        assert not _link(max_views=2, view_count=1).views_exhausted
        assert not _link(max_views=None, view_count=10_000).views_exhausted

    def test_public_dict_omits_token_hash(self):
        link = _link(metadata={"note": "for the buyer"})
        body = link.to_public_dict(NOW)
        assert "token_hash" not in body
        assert body["short_code"] == "abcd1234"
        assert body["metadata"] == {"note": "for the buyer"}
        assert body["is_active"] is True
        assert body["expires_at"] is None


# =====================================================================
# In-memory repository
# =====================================================================


class TestInMemoryShareLinkRepository:
    @pytest.mark.asyncio
    async def test_insert_assigns_id_and_lookups_work(self):
        repo = InMemoryShareLinkRepository()
        stored = await repo.insert(_link())

        assert stored.id.startswith("shl_")
        assert (await repo.get(stored.id)).short_code == "abcd1234"
        assert (await repo.get_by_token_hash(hash_token("token-1"))).id == stored.id
        assert (await repo.get_by_short_code("abcd1234")).id == stored.id
        assert await repo.short_code_exists("abcd1234")
        assert not await repo.short_code_exists("zzzz9999")

    @pytest.mark.asyncio
    async def test_duplicate_short_code_conflicts(self):
        repo = InMemoryShareLinkRepository()
        await repo.insert(_link())
        with pytest.raises(ShareLinkConflict):
            await repo.insert(_link(token_hash=hash_token("token-2")))

    @pytest.mark.asyncio
    async def test_duplicate_token_hash_conflicts(self):
        repo = InMemoryShareLinkRepository()
        await repo.insert(_link())
        with pytest.raises(ShareLinkConflict):
            await repo.insert(_link(short_code="other123"))

    @pytest.mark.asyncio
    async def test_returned_objects_are_copies(self):
        repo = InMemoryShareLinkRepository()
        stored = await repo.insert(_link())
        stored.view_count = 99
        assert (await repo.get(stored.id)).view_count == 0

    @pytest.mark.asyncio
    async def test_increment_stops_at_max_views(self):
        repo = InMemoryShareLinkRepository()
        stored = await repo.insert(_link(max_views=2))

        first = await repo.increment_view_count(stored.id, NOW)
        second = await repo.increment_view_count(stored.id, NOW + timedelta(minutes=1))
        third = await repo.increment_view_count(stored.id, NOW + timedelta(minutes=2))

        assert first.view_count == 1
        assert first.first_viewed_at == NOW
        assert second.view_count == 2
        assert second.last_viewed_at == NOW + timedelta(minutes=1)
        assert third is None
        assert (await repo.get(stored.id)).view_count == 2

    @pytest.mark.asyncio
    async def test_increment_refuses_revoked(self):
        repo = InMemoryShareLinkRepository()
        stored = await repo.insert(_link())
        await repo.mark_revoked(stored.id, "user_1", NOW)
        assert await repo.increment_view_count(stored.id, NOW) is None

    @pytest.mark.asyncio
    async def test_mark_revoked_keeps_first_timestamp(self):
        repo = InMemoryShareLinkRepository()
        stored = await repo.insert(_link())
        first = await repo.mark_revoked(stored.id, "user_1", NOW)
        second = await repo.mark_revoked(stored.id, "user_2", NOW + timedelta(hours=1))
        assert first.revoked_at == NOW
        assert second.revoked_at == NOW
        assert second.revoked_by == "user_1"

    @pytest.mark.asyncio
    async def test_list_excludes_revoked_by_default(self):
        repo = InMemoryShareLinkRepository()
        kept = await repo.insert(_link())
        gone = await repo.insert(_link(token_hash=hash_token("t2"), short_code="code0002"))
        await repo.mark_revoked(gone.id, "user_1", NOW)

        active = await repo.list_for_workspace("ws_1")
        everything = await repo.list_for_snapshot("snap_1", include_revoked=True)

        assert [l.id for l in active] == [kept.id]
        assert {l.id for l in everything} == {kept.id, gone.id}
