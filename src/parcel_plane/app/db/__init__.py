"""Supabase (PostgREST) storage backends."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from .audit_log import SupabaseAuditLog
from .errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
)
from .member_repo import SupabaseMemberRepository
from .report_repo import SupabaseReportRepository
from .session_repo import SupabaseSessionRepository
from .share_repo import SupabaseShareLinkRepository
from .supabase_client import PostgrestFilter, SupabaseClient
from .workspace_repo import SupabaseWorkspaceRepository


@dataclass(frozen=True)
class SupabaseRepositories:
    client: SupabaseClient
    workspace_repo: SupabaseWorkspaceRepository
    member_repo: SupabaseMemberRepository
    report_repo: SupabaseReportRepository
    session_repo: SupabaseSessionRepository
    share_repo: SupabaseShareLinkRepository
    audit_log: SupabaseAuditLog


def build_supabase_repositories(
    supabase_url: str,
    service_role_key: str,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> SupabaseRepositories:
    """Build every repository over one shared ``SupabaseClient``."""
    client = SupabaseClient(
        supabase_url=supabase_url,
        service_role_key=service_role_key,
        http_client=http_client,
    )
    return SupabaseRepositories(
        client=client,
        workspace_repo=SupabaseWorkspaceRepository(client),
        member_repo=SupabaseMemberRepository(client),
        report_repo=SupabaseReportRepository(client),
        session_repo=SupabaseSessionRepository(client),
        share_repo=SupabaseShareLinkRepository(client),
        audit_log=SupabaseAuditLog(client),
    )


__all__ = [
    "PostgrestFilter",
    "SupabaseAuditLog",
    "SupabaseAuthError",
    "SupabaseClient",
    "SupabaseConflictError",
    "SupabaseError",
    "SupabaseMemberRepository",
    "SupabaseNotFoundError",
    "SupabaseReportRepository",
    "SupabaseRepositories",
    "SupabaseSessionRepository",
    "SupabaseShareLinkRepository",
    "SupabaseWorkspaceRepository",
    "build_supabase_repositories",
]
