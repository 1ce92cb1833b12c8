"""Authentication and workspace authorization."""

from .auth_guard import (
    AuthGuardMiddleware,
    get_auth_identity,
    get_optional_identity,
)
from .token_verify import (
    AuthIdentity,
    TokenVerificationError,
    TokenVerifier,
    create_token_verifier,
    extract_bearer_token,
)
from .workspace_authz import (
    is_manager,
    require_workspace,
    require_workspace_manager,
    require_workspace_membership,
)

__all__ = [
    "AuthGuardMiddleware",
    "AuthIdentity",
    "TokenVerificationError",
    "TokenVerifier",
    "create_token_verifier",
    "extract_bearer_token",
    "get_auth_identity",
    "get_optional_identity",
    "is_manager",
    "require_workspace",
    "require_workspace_manager",
    "require_workspace_membership",
]
