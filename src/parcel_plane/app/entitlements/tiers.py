"""Subscription tiers, capabilities and plans.

The tier -> capability mapping is a single static lookup table.  Tiers are
ordered ``home < studio < portfolio`` and the table must be monotonic:
every capability granted at a tier is granted at every higher tier.  The
table is verified when this module is imported, so an edit that breaks
monotonicity fails at startup rather than silently downgrading a plan.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping


class Tier(str, Enum):
    HOME = "home"
    STUDIO = "studio"
    PORTFOLIO = "portfolio"

    @property
    def rank(self) -> int:
        return TIER_ORDER.index(self)


TIER_ORDER: tuple[Tier, ...] = (Tier.HOME, Tier.STUDIO, Tier.PORTFOLIO)
BASE_TIER = Tier.HOME


class Capability(str, Enum):
    RESOLVE_PARCELS = "resolve_parcels"
    GENERATE_REPORTS = "generate_reports"
    VIEW_REPORTS = "view_reports"
    SHARE_BASIC = "share_basic"
    BRAND_REPORTS = "brand_reports"
    SAVE_PARCELS = "save_parcels"
    UPLOAD_CONTACTS = "upload_contacts"
    SHARE_COLLABORATION = "share_collaboration"
    MANAGE_EVENTS = "manage_events"
    EXPORT_DATA = "export_data"
    VIEW_AUDIT_LOGS = "view_audit_logs"


_HOME = frozenset({
    Capability.RESOLVE_PARCELS,
    Capability.GENERATE_REPORTS,
    Capability.VIEW_REPORTS,
    Capability.SHARE_BASIC,
})
_STUDIO = _HOME | {
    Capability.BRAND_REPORTS,
    Capability.SAVE_PARCELS,
}
_PORTFOLIO = _STUDIO | {
    Capability.UPLOAD_CONTACTS,
    Capability.SHARE_COLLABORATION,
    Capability.MANAGE_EVENTS,
    Capability.EXPORT_DATA,
    Capability.VIEW_AUDIT_LOGS,
}

TIER_CAPABILITIES: Mapping[Tier, frozenset[Capability]] = {
    Tier.HOME: _HOME,
    Tier.STUDIO: frozenset(_STUDIO),
    Tier.PORTFOLIO: frozenset(_PORTFOLIO),
}


# ── Plans ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Plan:
    tier: Tier
    display_name: str
    monthly_price: int
    annual_price: int
    description: str
    benefits: tuple[str, ...] = ()
    seat_limit: int = 1
    reports_per_month: int | None = None

    @property
    def price_label(self) -> str:
        return f"${self.monthly_price}/month"

    @property
    def annual_savings(self) -> int:
        return self.monthly_price * 12 - self.annual_price

    def to_dict(self) -> dict:
        return {
            "tier": self.tier.value,
            "display_name": self.display_name,
            "monthly_price": self.monthly_price,
            "annual_price": self.annual_price,
            "price": self.price_label,
            "description": self.description,
            "benefits": list(self.benefits),
            "seat_limit": self.seat_limit,
            "reports_per_month": self.reports_per_month,
            "capabilities": sorted(c.value for c in TIER_CAPABILITIES[self.tier]),
        }


PLANS: Mapping[Tier, Plan] = {
    Tier.HOME: Plan(
        tier=Tier.HOME,
        display_name="Home Plan",
        monthly_price=29,
        annual_price=290,
        description="Parcel discovery and basic reports for individual buyers",
        benefits=(
            "Parcel discovery and search",
            "Basic report generation",
            "Report viewing",
            "Basic sharing",
            "Up to 10 reports per month",
        ),
        seat_limit=2,
        reports_per_month=10,
    ),
    Tier.STUDIO: Plan(
        tier=Tier.STUDIO,
        display_name="Studio Plan",
        monthly_price=79,
        annual_price=790,
        description="Branded reports for real estate professionals and small teams",
        benefits=(
            "All Home features",
            "Branded reports",
            "Saved parcels",
            "Up to 50 reports per month",
        ),
        seat_limit=5,
        reports_per_month=50,
    ),
    Tier.PORTFOLIO: Plan(
        tier=Tier.PORTFOLIO,
        display_name="Portfolio Plan",
        monthly_price=199,
        annual_price=1990,
        description="Advanced collaboration for portfolio teams",
        benefits=(
            "Role-based share links (viewer/commenter/editor)",
            "Time-limited links with expiration",
            "Recipient tracking and analytics",
            "Complete audit trails",
            "Unlimited share links",
            "Contact upload and data export",
        ),
        seat_limit=25,
        reports_per_month=None,
    ),
}


# ── Table checks ──────────────────────────────────────────────────────


class EntitlementTableError(ValueError):
    """The tier table is incomplete or not monotonic."""


def verify_monotonic(
    table: Mapping[Tier, frozenset[Capability]],
    order: tuple[Tier, ...] = TIER_ORDER,
) -> None:
    """Raise ``EntitlementTableError`` unless each tier includes the one below."""
    missing = [t.value for t in order if t not in table]
    if missing:
        raise EntitlementTableError(f"Tiers missing from table: {missing}")
    for lower, higher in zip(order, order[1:]):
        dropped = table[lower] - table[higher]
        if dropped:
            names = sorted(c.value for c in dropped)
            raise EntitlementTableError(
                f"{higher.value} must include every {lower.value} capability; missing {names}"
            )


verify_monotonic(TIER_CAPABILITIES)


# ── Lookups ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class EntitlementSet:
    tier: Tier
    capabilities: frozenset[Capability] = field(default_factory=frozenset)

    def __contains__(self, capability: object) -> bool:
        return capability in self.capabilities

    def to_dict(self) -> dict[str, bool]:
        return {c.value: c in self.capabilities for c in Capability}


def parse_tier(value: str | Tier | None) -> Tier:
    """Coerce a stored tier value; unknown or empty values fall back to home."""
    if isinstance(value, Tier):
        return value
    try:
        return Tier(value or BASE_TIER.value)
    except ValueError:
        return BASE_TIER


def parse_capability(value: str | Capability) -> Capability | None:
    if isinstance(value, Capability):
        return value
    try:
        return Capability(value)
    except ValueError:
        return None


def tier_rank(tier: Tier) -> int:
    return TIER_ORDER.index(tier)


def resolve(tier: Tier | str) -> EntitlementSet:
    tier = parse_tier(tier)
    return EntitlementSet(tier=tier, capabilities=TIER_CAPABILITIES[tier])


def has_capability(tier: Tier | str, capability: Capability | str) -> bool:
    cap = parse_capability(capability)
    return cap is not None and cap in TIER_CAPABILITIES[parse_tier(tier)]


def get_minimum_tier_for(capability: Capability | str) -> Tier | None:
    """Lowest tier granting ``capability``; None if no tier grants it."""
    cap = parse_capability(capability)
    if cap is None:
        return None
    for tier in TIER_ORDER:
        if cap in TIER_CAPABILITIES[tier]:
            return tier
    return None
