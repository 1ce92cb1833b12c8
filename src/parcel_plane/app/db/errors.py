"""PostgREST error hierarchy.

These carry the status and PostgREST error fields, never the
``httpx.Response`` or request headers (which hold the service-role key).
"""

from __future__ import annotations

# Postgres SQLSTATE for unique_violation.
UNIQUE_VIOLATION = "23505"


class SupabaseError(Exception):
    """A PostgREST request failed."""

    def __init__(
        self,
        status_code: int,
        message: str,
        code: str | None = None,
        details: str | None = None,
        hint: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.message = message
        self.code = code
        self.details = details
        self.hint = hint
        super().__init__(str(self))

    def __str__(self) -> str:
        bits = [f"{type(self).__name__}(status={self.status_code})", self.message]
        if self.code:
            bits.append(f"code={self.code}")
        if self.details:
            bits.append(f"details={self.details}")
        return " ".join(bits)


class SupabaseAuthError(SupabaseError):
    """401/403: bad service key or row-level security."""


class SupabaseNotFoundError(SupabaseError):
    """404: missing table, view or RPC function."""


class SupabaseConflictError(SupabaseError):
    """409 or unique violation."""

    @property
    def is_unique_violation(self) -> bool:
        return self.code == UNIQUE_VIOLATION or self.status_code == 409
