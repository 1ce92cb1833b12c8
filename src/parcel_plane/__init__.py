"""parcel-plane: share links and plan entitlements for parcel reports."""

__version__ = "0.1.0"
