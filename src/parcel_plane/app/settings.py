"""Service configuration settings.

PlatformSettings is the single configuration object accepted by create_app().
It is a plain frozen dataclass (not env-coupled) so tests can inject config
without touching os.environ; ``from_env`` builds it for real deployments.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

VALID_ENVIRONMENTS = ("local", "dev", "staging", "production")
VALID_LOG_FORMATS = ("json", "console")

DEFAULT_PUBLIC_URL = "http://localhost:3000"
DEFAULT_UPGRADE_URL = "/pricing"
DEFAULT_CORS_ORIGINS = ("http://localhost:5173", "http://localhost:3000")
DEFAULT_EXPIRY_DAYS = 7
DEFAULT_CACHE_TTL_SECONDS = 300.0


@dataclass(frozen=True, slots=True)
class PlatformSettings:
    """Configuration for the share-link / entitlement FastAPI application.

    All fields have sensible defaults for local development.
    Non-local environments must supply real values for supabase_url,
    supabase_service_role_key, and supabase_jwt_secret.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production."""

    # ── Supabase ───────────────────────────────────────────────────
    supabase_url: str = ""
    """Supabase project URL (e.g. https://xyz.supabase.co)."""

    supabase_service_role_key: str = ""
    """Supabase service-role key for PostgREST calls. Never log this."""

    supabase_jwt_secret: str = ""
    """HS256 secret used to verify user access tokens. Never log this."""

    # ── Public URLs ────────────────────────────────────────────────
    public_url: str = DEFAULT_PUBLIC_URL
    """Base URL used to build share and short links."""

    upgrade_url: str = DEFAULT_UPGRADE_URL
    """Where upgrade prompts send the user."""

    # ── CORS ───────────────────────────────────────────────────────
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS
    """Allowed CORS origins."""

    # ── Sharing / caching ──────────────────────────────────────────
    share_link_default_expiry_days: int = DEFAULT_EXPIRY_DAYS
    """Expiry applied to new links when the caller does not pick one."""

    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    """Lifetime of cached subscription and account-context lookups."""

    # ── Logging ────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if self.environment not in VALID_ENVIRONMENTS:
            errors.append(
                f"environment must be one of {', '.join(VALID_ENVIRONMENTS)}; "
                f"got {self.environment!r}"
            )
        if self.share_link_default_expiry_days < 1:
            errors.append("share_link_default_expiry_days must be >= 1")
        if self.cache_ttl_seconds < 0:
            errors.append("cache_ttl_seconds must be >= 0")
        if self.log_format not in VALID_LOG_FORMATS:
            errors.append(f"log_format must be one of {', '.join(VALID_LOG_FORMATS)}")
        if not self.is_local:
            if not self.supabase_url:
                errors.append(f"{self.environment}: supabase_url is required")
            if not self.supabase_service_role_key:
                errors.append(
                    f"{self.environment}: supabase_service_role_key is required"
                )
            if not self.supabase_jwt_secret or len(self.supabase_jwt_secret) < 32:
                errors.append(
                    f"{self.environment}: supabase_jwt_secret must be >= 32 characters"
                )
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> PlatformSettings:
        """Build settings from environment variables.

        This is a convenience factory for production use. Tests should
        construct PlatformSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        cors_raw = env.get("CORS_ORIGINS", "")
        cors = tuple(o.strip() for o in cors_raw.split(",") if o.strip()) if cors_raw else DEFAULT_CORS_ORIGINS

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            supabase_url=env.get("SUPABASE_URL", ""),
            supabase_service_role_key=env.get("SUPABASE_SERVICE_ROLE_KEY", ""),
            supabase_jwt_secret=env.get("SUPABASE_JWT_SECRET", ""),
            public_url=env.get("PUBLIC_URL", DEFAULT_PUBLIC_URL).rstrip("/"),
            upgrade_url=env.get("UPGRADE_URL", DEFAULT_UPGRADE_URL),
            cors_origins=cors,
            share_link_default_expiry_days=int(
                env.get("SHARE_LINK_DEFAULT_EXPIRY_DAYS", DEFAULT_EXPIRY_DAYS)
            ),
            cache_ttl_seconds=float(env.get("CACHE_TTL_SECONDS", DEFAULT_CACHE_TTL_SECONDS)),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            log_format=env.get("LOG_FORMAT", "json").lower(),
        )
