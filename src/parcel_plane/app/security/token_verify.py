"""Bearer JWT verification.

Verifies user access tokens issued by the auth provider and extracts the
caller identity used for share-link creation, revocation and
``requires_auth`` links.  Two key sources are supported:

  - HS256 with the project JWT secret (``SUPABASE_JWT_SECRET``), the
    default for hosted and local deployments.
  - RS256 via the project JWKS endpoint when no secret is configured.

Login flows and session cookies are out of scope; the service only
consumes ``Authorization: Bearer <token>``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

import jwt
from jwt import PyJWKClient, PyJWKClientError
from starlette.requests import Request

DEFAULT_AUDIENCE = "authenticated"
JWKS_CACHE_TTL_SECONDS = 300
BEARER_PREFIX = "bearer "


@dataclass(frozen=True, slots=True)
class AuthIdentity:
    """Verified caller identity.

    Attributes:
        user_id: Auth user id (``sub`` claim).
        email: Lower-cased email, empty when the token has none.
        role: Provider role claim.
        raw_claims: Decoded JWT payload.
    """

    user_id: str
    email: str = ""
    role: str = "authenticated"
    raw_claims: dict[str, Any] = field(default_factory=dict)


class TokenVerificationError(Exception):
    def __init__(self, code: str, detail: str = "") -> None:
        self.code = code
        self.detail = detail
        super().__init__(f"{code}: {detail}" if detail else code)


class KeyProvider(Protocol):
    def get_signing_key(self, token: str) -> Any: ...


class JWKSKeyProvider:
    """Signing keys from a JWKS endpoint, cached by PyJWKClient."""

    def __init__(self, jwks_url: str, cache_ttl: int = JWKS_CACHE_TTL_SECONDS) -> None:
        self._client = PyJWKClient(jwks_url, cache_jwk_set=True, lifespan=cache_ttl)

    def get_signing_key(self, token: str) -> Any:
        try:
            return self._client.get_signing_key_from_jwt(token).key
        except PyJWKClientError as exc:
            raise TokenVerificationError("jwks_fetch_error", str(exc)) from exc


class StaticKeyProvider:
    def __init__(self, secret: str) -> None:
        self._secret = secret

    def get_signing_key(self, token: str) -> str:
        return self._secret


class TokenVerifier:
    """Decode and verify a JWT, returning an ``AuthIdentity``.

    Args:
        key_provider: Resolves the verification key for a token.
        audience: Expected ``aud`` claim.
        algorithms: Accepted signing algorithms.
    """

    def __init__(
        self,
        key_provider: KeyProvider,
        audience: str = DEFAULT_AUDIENCE,
        algorithms: list[str] | None = None,
    ) -> None:
        self._key_provider = key_provider
        self._audience = audience
        self._algorithms = algorithms or ["HS256"]

    def verify(self, token: str) -> AuthIdentity:
        """Raises ``TokenVerificationError`` on any failure."""
        if not token or not token.strip():
            raise TokenVerificationError("empty_token")

        key = self._key_provider.get_signing_key(token)
        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=self._algorithms,
                audience=self._audience,
                options={"require": ["sub", "exp", "aud"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenVerificationError("token_expired")
        except jwt.InvalidAudienceError:
            raise TokenVerificationError("invalid_audience", f"expected {self._audience}")
        except jwt.InvalidTokenError as exc:
            raise TokenVerificationError("invalid_token", str(exc))

        user_id = claims.get("sub")
        if not user_id:
            raise TokenVerificationError("missing_sub_claim")

        email = claims.get("email") or ""
        return AuthIdentity(
            user_id=str(user_id),
            email=email.lower(),
            role=claims.get("role", "authenticated"),
            raw_claims=claims,
        )


def extract_bearer_token(request: Request) -> str | None:
    """Return the bearer token from the Authorization header, if any."""
    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith(BEARER_PREFIX):
        token = auth_header[len(BEARER_PREFIX):].strip()
        return token or None
    return None


def create_token_verifier(
    supabase_url: str | None = None,
    jwt_secret: str | None = None,
    audience: str = DEFAULT_AUDIENCE,
) -> TokenVerifier:
    """Build a verifier: HS256 when ``jwt_secret`` is set, else project JWKS.

    Raises:
        ValueError: neither a secret nor a project URL was given.
    """
    if jwt_secret:
        return TokenVerifier(StaticKeyProvider(jwt_secret), audience=audience, algorithms=["HS256"])

    if supabase_url:
        jwks_url = f"{supabase_url.rstrip('/')}/auth/v1/.well-known/jwks.json"
        return TokenVerifier(JWKSKeyProvider(jwks_url), audience=audience, algorithms=["RS256"])

    raise ValueError("Either jwt_secret (HS256) or supabase_url (JWKS) is required")
