"""Share-link validation.

Pure functions, no I/O.  Checks run in a fixed order and the first failing
check decides the reason code, so denial messages are deterministic:

  1. not_found          link is None
  2. revoked            revoked_at is set
  3. expired            expires_at is set and now >= expires_at
  4. max_views_reached  max_views is set and view_count >= max_views
  5. auth_required      requires_auth and the caller is anonymous

``validate_link`` covers 1-4 (link state only).  ``check_access`` adds 5,
which depends on caller context.  Callers record a view only after
``check_access`` passes, so anonymous probing of an auth-only link never
consumes its view budget.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .model import ShareLink


class ReasonCode(str, Enum):
    NOT_FOUND = "not_found"
    REVOKED = "revoked"
    EXPIRED = "expired"
    MAX_VIEWS_REACHED = "max_views_reached"
    AUTH_REQUIRED = "auth_required"


# Public access endpoints surface the reason with these statuses.
REASON_STATUS: dict[ReasonCode, int] = {
    ReasonCode.NOT_FOUND: 404,
    ReasonCode.REVOKED: 410,
    ReasonCode.EXPIRED: 410,
    ReasonCode.MAX_VIEWS_REACHED: 410,
    ReasonCode.AUTH_REQUIRED: 401,
}


@dataclass(frozen=True, slots=True)
class ValidationResult:
    valid: bool
    reason: ReasonCode | None = None

    @classmethod
    def ok(cls) -> ValidationResult:
        return cls(valid=True)

    @classmethod
    def denied(cls, reason: ReasonCode) -> ValidationResult:
        return cls(valid=False, reason=reason)


def validate_link(link: ShareLink | None, now: datetime) -> ValidationResult:
    """Decide whether ``link`` is usable at ``now`` based on its state alone."""
    if link is None:
        return ValidationResult.denied(ReasonCode.NOT_FOUND)
    if link.is_revoked:
        return ValidationResult.denied(ReasonCode.REVOKED)
    if link.is_expired(now):
        return ValidationResult.denied(ReasonCode.EXPIRED)
    if link.views_exhausted:
        return ValidationResult.denied(ReasonCode.MAX_VIEWS_REACHED)
    return ValidationResult.ok()


def check_access(
    link: ShareLink | None,
    now: datetime,
    user_id: str | None,
) -> ValidationResult:
    """Link-state checks followed by the caller authentication check."""
    result = validate_link(link, now)
    if not result.valid:
        return result
    if link.requires_auth and not user_id:
        return ValidationResult.denied(ReasonCode.AUTH_REQUIRED)
    return result
