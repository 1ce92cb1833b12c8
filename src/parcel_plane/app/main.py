"""FastAPI application factory.

The create_app() factory is the single entry point for building the ASGI
application.  It wires middleware (request id, auth, CORS), the error
mapping, the domain services and the route modules, and injects storage
implementations.

Usage:
    # Local development (in-memory storage)
    from parcel_plane.app import create_app, PlatformSettings
    app = create_app(PlatformSettings())

    # Hosted (Supabase storage built from settings)
    app = create_app(PlatformSettings.from_env())

    # Testing (full DI control)
    app = create_app(settings, share_repo=repo, clock=lambda: fixed_now)
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from .account import AccountContextService, SubscriptionService
from .audit import AuditEmitter, InMemoryAuditLog
from .cache import TTLCache
from .entitlements.gate import EntitlementGate
from .errors import install_error_handlers
from .observability.logging import configure_logging, request_id_ctx
from .protocols import (
    AuditLog,
    MemberRepository,
    ReportRepository,
    SessionRepository,
    ShareLinkRepository,
    WorkspaceRepository,
)
from .routes import (
    create_account_router,
    create_audit_router,
    create_entitlements_router,
    create_share_access_router,
    create_share_links_router,
)
from .security.auth_guard import AuthGuardMiddleware
from .security.token_verify import TokenVerifier, create_token_verifier
from .settings import PlatformSettings
from .sharing.store import ShareLinkStore

logger = logging.getLogger(__name__)

# Signing secret for bearer tokens in local mode when none is configured.
LOCAL_DEV_JWT_SECRET = "local-dev-jwt-secret-not-for-production-use"


@dataclass(frozen=True)
class AppDependencies:
    """Storage implementations, stored on ``app.state.deps``."""

    workspace_repo: WorkspaceRepository
    member_repo: MemberRepository
    report_repo: ReportRepository
    session_repo: SessionRepository
    share_repo: ShareLinkRepository
    audit_log: AuditLog


@dataclass(frozen=True)
class AppServices:
    """Domain services built over the dependencies, on ``app.state.services``."""

    store: ShareLinkStore
    gate: EntitlementGate
    audit: AuditEmitter
    accounts: AccountContextService
    subscriptions: SubscriptionService


def _build_inmemory_deps() -> AppDependencies:
    from .inmemory import (
        InMemoryMemberRepository,
        InMemoryReportRepository,
        InMemorySessionRepository,
        InMemoryWorkspaceRepository,
    )
    from .sharing.model import InMemoryShareLinkRepository

    return AppDependencies(
        workspace_repo=InMemoryWorkspaceRepository(),
        member_repo=InMemoryMemberRepository(),
        report_repo=InMemoryReportRepository(),
        session_repo=InMemorySessionRepository(),
        share_repo=InMemoryShareLinkRepository(),
        audit_log=InMemoryAuditLog(),
    )


def _build_supabase_deps(
    settings: PlatformSettings,
    http_client: httpx.AsyncClient | None,
) -> AppDependencies:
    from .db import build_supabase_repositories

    repos = build_supabase_repositories(
        settings.supabase_url,
        settings.supabase_service_role_key,
        http_client=http_client,
    )
    return AppDependencies(
        workspace_repo=repos.workspace_repo,
        member_repo=repos.member_repo,
        report_repo=repos.report_repo,
        session_repo=repos.session_repo,
        share_repo=repos.share_repo,
        audit_log=repos.audit_log,
    )


def build_services(
    deps: AppDependencies,
    settings: PlatformSettings,
    clock: Callable[[], datetime] | None = None,
) -> AppServices:
    audit = AuditEmitter(deps.audit_log)
    gate = EntitlementGate(
        deps.workspace_repo,
        audit,
        cache=TTLCache(settings.cache_ttl_seconds),
        upgrade_url=settings.upgrade_url,
    )
    accounts = AccountContextService(
        deps.workspace_repo,
        deps.member_repo,
        deps.session_repo,
        cache=TTLCache(settings.cache_ttl_seconds),
    )
    store_kwargs = {"clock": clock} if clock is not None else {}
    store = ShareLinkStore(
        deps.share_repo,
        deps.workspace_repo,
        deps.member_repo,
        deps.report_repo,
        default_expiry=timedelta(days=settings.share_link_default_expiry_days),
        **store_kwargs,
    )
    subscriptions = SubscriptionService(
        deps.workspace_repo, deps.member_repo, gate, accounts, audit,
    )
    return AppServices(
        store=store,
        gate=gate,
        audit=audit,
        accounts=accounts,
        subscriptions=subscriptions,
    )


# ── Middleware ──────────────────────────────────────────────────────


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Generate or propagate X-Request-ID and bind it for logging."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_ctx.set(request_id)
        structlog.contextvars.bind_contextvars(path=request.url.path, method=request.method)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("path", "method")
            request_id_ctx.reset(token)
        response.headers["X-Request-ID"] = request_id
        return response


# ── Factory ─────────────────────────────────────────────────────────


def create_app(
    settings: PlatformSettings | None = None,
    *,
    workspace_repo: WorkspaceRepository | None = None,
    member_repo: MemberRepository | None = None,
    report_repo: ReportRepository | None = None,
    session_repo: SessionRepository | None = None,
    share_repo: ShareLinkRepository | None = None,
    audit_log: AuditLog | None = None,
    token_verifier: TokenVerifier | None = None,
    clock: Callable[[], datetime] | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Create a configured FastAPI application.

    Args:
        settings: Application settings. Defaults to local-dev settings.
        workspace_repo..audit_log: Storage overrides.  Missing ones are
            in-memory in local mode and Supabase-backed otherwise.
        token_verifier: Bearer token verifier override.
        clock: UTC "now" source for share-link checks.
        http_client: httpx client for the Supabase backend.

    Raises:
        ValueError: If settings validation fails.
    """
    if settings is None:
        settings = PlatformSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Settings validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )

    overrides = {
        "workspace_repo": workspace_repo,
        "member_repo": member_repo,
        "report_repo": report_repo,
        "session_repo": session_repo,
        "share_repo": share_repo,
        "audit_log": audit_log,
    }
    if all(v is not None for v in overrides.values()):
        deps = AppDependencies(**overrides)  # type: ignore[arg-type]
    else:
        defaults = (
            _build_inmemory_deps() if settings.is_local
            else _build_supabase_deps(settings, http_client)
        )
        deps = AppDependencies(**{
            name: value if value is not None else getattr(defaults, name)
            for name, value in overrides.items()
        })

    services = build_services(deps, settings, clock)

    if token_verifier is None:
        secret = settings.supabase_jwt_secret or (LOCAL_DEV_JWT_SECRET if settings.is_local else "")
        token_verifier = create_token_verifier(
            supabase_url=settings.supabase_url or None,
            jwt_secret=secret or None,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(level=settings.log_level, json_output=settings.log_format == "json")
        logger.info("Service startup (environment=%s)", settings.environment)
        yield
        logger.info("Service shutdown")

    app = FastAPI(
        title="Parcel Plane",
        description="Share-link access control and entitlement gating",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.deps = deps
    app.state.services = services
    app.state.settings = settings

    install_error_handlers(app)

    # Execution order: RequestID -> AuthGuard -> CORS -> route handler
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(AuthGuardMiddleware, token_verifier=token_verifier)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "environment": settings.environment,
        }

    app.include_router(create_share_links_router(
        services.store,
        services.gate,
        services.audit,
        deps.workspace_repo,
        deps.member_repo,
        deps.report_repo,
        public_url=settings.public_url,
    ))
    app.include_router(create_share_access_router(services.store, deps.report_repo, services.audit))
    app.include_router(create_entitlements_router(services.gate, services.subscriptions, deps.member_repo))
    app.include_router(create_account_router(services.accounts))
    app.include_router(create_audit_router(services.audit, services.gate, deps.member_repo))

    return app


# For uvicorn, use --factory:
#   uvicorn parcel_plane.app.main:create_app --factory
