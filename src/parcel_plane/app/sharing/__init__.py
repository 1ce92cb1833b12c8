"""Share links: model, lifecycle store and access validation."""

from .model import CreatedShareLink, ShareLink, ShareLinkOptions
from .store import ShareLinkStore, ShareLinkUpdate
from .validator import ReasonCode, ValidationResult, check_access, validate_link

__all__ = [
    "CreatedShareLink",
    "ReasonCode",
    "ShareLink",
    "ShareLinkOptions",
    "ShareLinkStore",
    "ShareLinkUpdate",
    "ValidationResult",
    "check_access",
    "validate_link",
]
