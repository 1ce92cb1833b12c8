"""Share-link domain model with token-hash persistence.

A share link grants time-bounded, view-bounded, role-scoped read access to
a frozen report snapshot.

Security invariant:
  The plaintext share token is generated once and returned to the creator.
  Only its SHA-256 hash is stored.  Token lookups hash the presented token
  and compare against stored hashes.  The short code is a shorter,
  user-facing alias stored as is.

Lifecycle:
  created -> (record_view)* -> revoked (terminal, one-way latch)
  Links are never physically deleted; expiry and view exhaustion are
  derived from ``expires_at`` / ``max_views`` at validation time.

This module provides:
  1. ``ShareLink`` - domain object matching the share_links table.
  2. ``ShareLinkOptions`` - caller-supplied creation options.
  3. ``generate_share_token`` / ``generate_short_code`` / ``hash_token``.
  4. ``InMemoryShareLinkRepository`` - storage for local dev and tests.
"""

from __future__ import annotations

import hashlib
import secrets
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

# ── Constants ─────────────────────────────────────────────────────────

TOKEN_BYTES = 32  # 256-bit tokens.
SHORT_CODE_LENGTH = 8
DEFAULT_EXPIRY_DAYS = 7

ACCESS_ROLES = ("viewer", "commenter", "editor")
DEFAULT_ACCESS_ROLE = "viewer"

_SHORT_CODE_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"


# ── Token operations ──────────────────────────────────────────────────


def generate_share_token() -> str:
    """Generate a cryptographically random URL-safe share token."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def generate_short_code(length: int = SHORT_CODE_LENGTH) -> str:
    """Generate a lowercase alphanumeric short code."""
    return "".join(secrets.choice(_SHORT_CODE_ALPHABET) for _ in range(length))


def hash_token(plaintext: str) -> str:
    """SHA-256 hash of a plaintext share token (the persisted value)."""
    return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ShareLinkConflict(Exception):
    """A token hash or short code collided with an existing link."""


# ── Domain model ──────────────────────────────────────────────────────


@dataclass
class ShareLink:
    """Share link domain object.

    Attributes:
        id: Link identity.
        workspace_id: Workspace that owns the snapshot.
        snapshot_id: Frozen report snapshot being shared.
        created_by: User who created the link.
        token_hash: SHA-256 hash of the plaintext token.
        short_code: User-facing alias.
        report_id: Report the snapshot was taken from, if known.
        expires_at: None means the link never expires.
        max_views: None means unlimited views.
        view_count: Successful, fully authorized renders so far.
        revoked_at: Set once, never cleared.
        access_role: viewer, commenter or editor.
        requires_auth: Viewer must be signed in.
        recipient_email / recipient_contact_id: Informational targeting.
    """

    id: str
    workspace_id: str
    snapshot_id: str
    created_by: str
    token_hash: str
    short_code: str
    report_id: str | None = None
    expires_at: datetime | None = None
    max_views: int | None = None
    view_count: int = 0
    revoked_at: datetime | None = None
    revoked_by: str | None = None
    access_role: str = DEFAULT_ACCESS_ROLE
    requires_auth: bool = False
    recipient_email: str | None = None
    recipient_contact_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    first_viewed_at: datetime | None = None
    last_viewed_at: datetime | None = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime | None = None

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    @property
    def views_exhausted(self) -> bool:
        return self.max_views is not None and self.view_count >= self.max_views

    def is_active(self, now: datetime) -> bool:
        return not self.is_revoked and not self.is_expired(now) and not self.views_exhausted

    def to_public_dict(self, now: datetime | None = None) -> dict[str, Any]:
        """Serialize for API responses. Never includes the token hash."""
        now = now or _utcnow()
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "snapshot_id": self.snapshot_id,
            "report_id": self.report_id,
            "created_by": self.created_by,
            "short_code": self.short_code,
            "access_role": self.access_role,
            "requires_auth": self.requires_auth,
            "recipient_email": self.recipient_email,
            "recipient_contact_id": self.recipient_contact_id,
            "expires_at": _iso(self.expires_at),
            "max_views": self.max_views,
            "view_count": self.view_count,
            "first_viewed_at": _iso(self.first_viewed_at),
            "last_viewed_at": _iso(self.last_viewed_at),
            "revoked_at": _iso(self.revoked_at),
            "created_at": _iso(self.created_at),
            "metadata": dict(self.metadata),
            "is_active": self.is_active(now),
            "is_revoked": self.is_revoked,
            "is_expired": self.is_expired(now),
        }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass
class ShareLinkOptions:
    """Creation options.

    ``expires_at`` is honoured when set.  When it is None,
    ``use_default_expiry`` decides between the configured default expiry
    (True, the default) and a link that never expires (False).
    """

    expires_at: datetime | None = None
    use_default_expiry: bool = True
    max_views: int | None = None
    requires_auth: bool = False
    recipient_email: str | None = None
    recipient_contact_id: str | None = None
    access_role: str = DEFAULT_ACCESS_ROLE
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CreatedShareLink:
    """A freshly created link plus its one-time plaintext token."""

    link: ShareLink
    token: str


# ── In-memory implementation ─────────────────────────────────────────


class InMemoryShareLinkRepository:
    """Dict-backed share link store for local dev and tests.

    Mutations complete without awaiting, so each one is atomic with respect
    to other coroutines on the same event loop.
    """

    def __init__(self) -> None:
        self._links: dict[str, ShareLink] = {}

    async def insert(self, link: ShareLink) -> ShareLink:
        for existing in self._links.values():
            if existing.token_hash == link.token_hash or existing.short_code == link.short_code:
                raise ShareLinkConflict(link.short_code)
        if not link.id:
            link.id = f"shl_{uuid.uuid4().hex[:12]}"
        self._links[link.id] = replace(link, metadata=dict(link.metadata))
        return replace(self._links[link.id])

    async def get(self, link_id: str) -> ShareLink | None:
        link = self._links.get(link_id)
        return replace(link) if link else None

    async def get_by_token_hash(self, token_hash: str) -> ShareLink | None:
        for link in self._links.values():
            if link.token_hash == token_hash:
                return replace(link)
        return None

    async def get_by_short_code(self, short_code: str) -> ShareLink | None:
        for link in self._links.values():
            if link.short_code == short_code:
                return replace(link)
        return None

    async def short_code_exists(self, short_code: str) -> bool:
        return any(l.short_code == short_code for l in self._links.values())

    async def list_for_workspace(
        self, workspace_id: str, *, include_revoked: bool = False,
    ) -> list[ShareLink]:
        return self._list(lambda l: l.workspace_id == workspace_id, include_revoked)

    async def list_for_snapshot(
        self, snapshot_id: str, *, include_revoked: bool = False,
    ) -> list[ShareLink]:
        return self._list(lambda l: l.snapshot_id == snapshot_id, include_revoked)

    def _list(self, predicate, include_revoked: bool) -> list[ShareLink]:
        result = [
            replace(l) for l in self._links.values()
            if predicate(l) and (include_revoked or not l.is_revoked)
        ]
        return sorted(result, key=lambda l: l.created_at, reverse=True)

    async def mark_revoked(
        self, link_id: str, revoked_by: str, revoked_at: datetime,
    ) -> ShareLink | None:
        link = self._links.get(link_id)
        if link is None:
            return None
        if link.revoked_at is None:
            link.revoked_at = revoked_at
            link.revoked_by = revoked_by
            link.updated_at = revoked_at
        return replace(link)

    async def increment_view_count(
        self, link_id: str, viewed_at: datetime,
    ) -> ShareLink | None:
        link = self._links.get(link_id)
        if link is None or link.is_revoked or link.views_exhausted:
            return None
        link.view_count += 1
        if link.first_viewed_at is None:
            link.first_viewed_at = viewed_at
        link.last_viewed_at = viewed_at
        return replace(link)

    async def update(self, link_id: str, changes: dict[str, Any]) -> ShareLink | None:
        link = self._links.get(link_id)
        if link is None:
            return None
        for key, value in changes.items():
            setattr(link, key, value)
        return replace(link)
