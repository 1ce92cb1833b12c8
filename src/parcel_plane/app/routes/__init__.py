"""HTTP route factories."""

from .account import create_account_router
from .audit import create_audit_router
from .entitlements import create_entitlements_router
from .share_access import create_share_access_router
from .share_links import create_share_links_router

__all__ = [
    "create_account_router",
    "create_audit_router",
    "create_entitlements_router",
    "create_share_access_router",
    "create_share_links_router",
]
