"""Share-link access control and entitlement gating FastAPI application."""

from .main import create_app
from .settings import PlatformSettings

__all__ = ["create_app", "PlatformSettings"]
