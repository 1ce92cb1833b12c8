"""Authentication middleware and route dependencies.

``AuthGuardMiddleware`` verifies a bearer token when one is presented and
stores the result on ``request.state.auth_identity``.  Several routes are
public (share access by token or short code, plans), so the middleware
runs in optional mode by default: anonymous requests pass through with no
identity and each route decides whether it needs one.

  - ``get_auth_identity``      identity or 401
  - ``get_optional_identity``  identity or None

A presented but invalid token is always rejected with 401, including on
public routes, so a client never silently falls back to anonymous access.
"""

from __future__ import annotations

import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..errors import UnauthenticatedError
from .token_verify import (
    AuthIdentity,
    TokenVerificationError,
    TokenVerifier,
    extract_bearer_token,
)

logger = logging.getLogger(__name__)

DEFAULT_EXEMPT_PATHS: tuple[str, ...] = (
    "/health",
    "/docs",
    "/openapi.json",
)


class AuthGuardMiddleware(BaseHTTPMiddleware):
    """Resolve the caller identity from ``Authorization: Bearer``.

    Args:
        app: The ASGI application.
        token_verifier: Verifier for presented tokens.
        exempt_paths: Paths that skip verification entirely.
        require_auth: When True, anonymous requests to non-exempt paths
            get a 401 here instead of at the route.
    """

    def __init__(
        self,
        app,
        token_verifier: TokenVerifier,
        exempt_paths: tuple[str, ...] = DEFAULT_EXEMPT_PATHS,
        require_auth: bool = False,
    ) -> None:
        super().__init__(app)
        self._verifier = token_verifier
        self._exempt_paths = exempt_paths
        self._require_auth = require_auth

    def _is_exempt(self, path: str) -> bool:
        return any(path == p or path.startswith(p + "/") for p in self._exempt_paths)

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.auth_identity = None

        if request.method == "OPTIONS" or self._is_exempt(request.url.path):
            return await call_next(request)

        token = extract_bearer_token(request)
        if token:
            try:
                request.state.auth_identity = self._verifier.verify(token)
            except TokenVerificationError as exc:
                logger.info("Rejected bearer token: %s", exc.code)
                return _unauthorized(request, exc.code, exc.detail or "Invalid access token")
        elif self._require_auth:
            return _unauthorized(request, "no_credentials", "Authentication required")

        return await call_next(request)


def _unauthorized(request: Request, code: str, detail: str) -> JSONResponse:
    body = {"error": "unauthorized", "code": code, "detail": detail}
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        body["request_id"] = request_id
    return JSONResponse(status_code=401, content=body, headers={"WWW-Authenticate": "Bearer"})


# ── Dependency helpers ───────────────────────────────────────────────


def get_optional_identity(request: Request) -> AuthIdentity | None:
    return getattr(request.state, "auth_identity", None)


def get_auth_identity(request: Request) -> AuthIdentity:
    """FastAPI dependency returning the authenticated identity.

    Raises:
        UnauthenticatedError: no verified identity on the request.
    """
    identity = get_optional_identity(request)
    if identity is None:
        raise UnauthenticatedError("Authentication required", code="no_credentials")
    return identity
