"""Audit events for share links and entitlement gating.

Records append-only events: share-link creation, views, revocation,
access denials, blocked premium features and subscription changes.

Guarantees:
  - ``AuditEmitter.log`` never raises.  The primary operation must not fail
    because auditing failed; errors are logged locally and swallowed.
  - Idempotency: an event carrying a ``request_id`` is unique per
    (workspace_id, event_type, request_id).  Uniqueness is enforced by the
    storage layer (unique index), so a replay after a restart or on another
    instance is still dropped.  A duplicate is a silent no-op.
    Creation and revocation events carry no request id: replaying a
    create mints a new link, and each link gets its own event.
  - Plaintext share tokens never appear in event metadata; only an 8-char
    prefix is kept for correlation.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

import structlog

from .protocols import AuditLog

logger = structlog.get_logger(__name__)


# ── Event types ───────────────────────────────────────────────────────

SHARE_LINK_CREATED = "share_link.created"
SHARE_LINK_VIEWED = "share_link.viewed"
SHARE_LINK_REVOKED = "share_link.revoked"
SHARE_LINK_UPDATED = "share_link.updated"
SHARE_LINK_ACCESS_DENIED = "share_link.access_denied"
ENTITLEMENT_DENIED = "entitlement.denied"
FEATURE_BLOCKED = "feature.blocked"
SUBSCRIPTION_CHANGED = "subscription.changed"

TOKEN_PREFIX_LENGTH = 8


# ── Token redaction ──────────────────────────────────────────────────


def redact_token(token: str | None) -> str:
    """Truncate a token to a prefix for logging; ``<redacted>`` if short."""
    if not token or len(token) < TOKEN_PREFIX_LENGTH:
        return "<redacted>"
    return f"{token[:TOKEN_PREFIX_LENGTH]}..."


# ── Event model ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class AuditEvent:
    """Immutable audit record."""

    workspace_id: str
    event_type: str
    user_id: str | None = None
    resource_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    request_id: str | None = None
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    id: str | None = None

    @property
    def idempotency_key(self) -> tuple[str, str, str] | None:
        if self.request_id is None:
            return None
        return (self.workspace_id, self.event_type, self.request_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "event_type": self.event_type,
            "user_id": self.user_id,
            "resource_id": self.resource_id,
            "metadata": dict(self.metadata),
            "request_id": self.request_id,
            "created_at": self.created_at.isoformat(),
        }


class DuplicateAuditEvent(Exception):
    """An event with the same idempotency key is already stored."""


# ── In-memory storage ────────────────────────────────────────────────


class InMemoryAuditLog:
    """List-backed audit storage with a unique index on the idempotency key."""

    def __init__(self) -> None:
        self._events: list[AuditEvent] = []
        self._keys: set[tuple[str, str, str]] = set()
        self._next_id = 1

    async def append(self, event: AuditEvent) -> AuditEvent:
        key = event.idempotency_key
        if key is not None and key in self._keys:
            raise DuplicateAuditEvent(key)
        stored = replace(event, id=f"evt_{self._next_id}")
        self._next_id += 1
        if key is not None:
            self._keys.add(key)
        self._events.append(stored)
        return stored

    async def list_for_workspace(self, workspace_id: str, limit: int = 50) -> list[AuditEvent]:
        return self._newest([e for e in self._events if e.workspace_id == workspace_id], limit)

    async def list_for_resource(self, resource_id: str, limit: int = 50) -> list[AuditEvent]:
        return self._newest([e for e in self._events if e.resource_id == resource_id], limit)

    @staticmethod
    def _newest(events: list[AuditEvent], limit: int) -> list[AuditEvent]:
        events.sort(key=lambda e: e.created_at, reverse=True)
        return events[:limit]

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    def find(self, event_type: str | None = None, workspace_id: str | None = None) -> list[AuditEvent]:
        result = self._events
        if event_type:
            result = [e for e in result if e.event_type == event_type]
        if workspace_id:
            result = [e for e in result if e.workspace_id == workspace_id]
        return list(result)


# ── Emitter ──────────────────────────────────────────────────────────


class AuditEmitter:
    """Best-effort recorder in front of an ``AuditLog``."""

    def __init__(self, audit_log: AuditLog) -> None:
        self._log = audit_log

    async def log(self, event: AuditEvent) -> None:
        try:
            await self._log.append(event)
        except DuplicateAuditEvent:
            logger.debug(
                "audit_duplicate_dropped",
                event_type=event.event_type,
                workspace_id=event.workspace_id,
                request_id=event.request_id,
            )
        except Exception:
            logger.exception(
                "audit_emit_failed",
                event_type=event.event_type,
                workspace_id=event.workspace_id,
            )

    async def list_for_workspace(self, workspace_id: str, limit: int = 50) -> list[AuditEvent]:
        return await self._log.list_for_workspace(workspace_id, limit)

    async def list_for_resource(self, resource_id: str, limit: int = 50) -> list[AuditEvent]:
        return await self._log.list_for_resource(resource_id, limit)


# ── Convenience emitters ─────────────────────────────────────────────


async def emit_share_created(
    emitter: AuditEmitter,
    *,
    workspace_id: str,
    link_id: str,
    snapshot_id: str,
    token: str,
    user_id: str,
    expires_at: datetime | None = None,
    max_views: int | None = None,
    requires_auth: bool = False,
) -> None:
    await emitter.log(AuditEvent(
        workspace_id=workspace_id,
        event_type=SHARE_LINK_CREATED,
        user_id=user_id,
        resource_id=link_id,
        metadata={
            "snapshot_id": snapshot_id,
            "token_prefix": redact_token(token),
            "expires_at": expires_at.isoformat() if expires_at else None,
            "max_views": max_views,
            "requires_auth": requires_auth,
        },
    ))


async def emit_share_viewed(
    emitter: AuditEmitter,
    *,
    workspace_id: str,
    link_id: str,
    user_id: str | None,
    view_count: int,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    await emitter.log(AuditEvent(
        workspace_id=workspace_id,
        event_type=SHARE_LINK_VIEWED,
        user_id=user_id,
        resource_id=link_id,
        metadata={
            "view_count": view_count,
            "ip_address": ip_address,
            "user_agent": user_agent,
        },
    ))


async def emit_share_revoked(
    emitter: AuditEmitter,
    *,
    workspace_id: str,
    link_id: str,
    user_id: str,
) -> None:
    await emitter.log(AuditEvent(
        workspace_id=workspace_id,
        event_type=SHARE_LINK_REVOKED,
        user_id=user_id,
        resource_id=link_id,
    ))


async def emit_share_updated(
    emitter: AuditEmitter,
    *,
    workspace_id: str,
    link_id: str,
    user_id: str,
    changed_fields: list[str],
) -> None:
    await emitter.log(AuditEvent(
        workspace_id=workspace_id,
        event_type=SHARE_LINK_UPDATED,
        user_id=user_id,
        resource_id=link_id,
        metadata={"changed_fields": sorted(changed_fields)},
    ))


async def emit_share_denied(
    emitter: AuditEmitter,
    *,
    workspace_id: str,
    link_id: str,
    reason: str,
    user_id: str | None = None,
) -> None:
    await emitter.log(AuditEvent(
        workspace_id=workspace_id,
        event_type=SHARE_LINK_ACCESS_DENIED,
        user_id=user_id,
        resource_id=link_id,
        metadata={"reason": reason},
    ))


async def emit_entitlement_denied(
    emitter: AuditEmitter,
    *,
    workspace_id: str,
    user_id: str | None,
    capability: str,
    current_tier: str,
    required_tier: str | None,
    reason: str,
    request_id: str | None = None,
) -> None:
    await emitter.log(AuditEvent(
        workspace_id=workspace_id,
        event_type=ENTITLEMENT_DENIED,
        user_id=user_id,
        resource_id=capability,
        request_id=request_id,
        metadata={
            "capability": capability,
            "current_tier": current_tier,
            "required_tier": required_tier,
            "reason": reason,
        },
    ))
