"""
bumpboard.constants — Shared Constants
=======================================

Single source of truth for the tier → cooldown table and the listing
browse defaults.  Import from here instead of hard-coding hours in routes,
cogs, or services.
"""

from __future__ import annotations

from datetime import timedelta

from bumpboard.database.models import SubscriptionTier

# ---------------------------------------------------------------------------
# Bump cooldowns — THE single canonical table
# ---------------------------------------------------------------------------
# Gold sits between the paid and free tiers.  Deployments that want gold to
# match platinum override it in config.yaml (``bump_cooldown_hours.gold``).
TIER_COOLDOWNS: dict[SubscriptionTier, timedelta] = {
    SubscriptionTier.FREE: timedelta(hours=6),
    SubscriptionTier.GOLD: timedelta(hours=3),
    SubscriptionTier.PLATINUM: timedelta(hours=2),
    SubscriptionTier.PREMIUM: timedelta(hours=2),
}

# Tiers allowed to schedule automatic bumps
AUTO_BUMP_TIERS: frozenset[SubscriptionTier] = frozenset({
    SubscriptionTier.GOLD,
    SubscriptionTier.PLATINUM,
    SubscriptionTier.PREMIUM,
})


# ---------------------------------------------------------------------------
# Listing browse defaults
# ---------------------------------------------------------------------------
DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 100

# Member-count buckets: name → (exclusive lower bound, inclusive upper bound)
MEMBER_BUCKETS: dict[str, tuple[int | None, int | None]] = {
    "small": (None, 100),
    "medium": (100, 1000),
    "large": (1000, None),
}

# Listings with at least this many bumps show up under the "popular" tab
POPULAR_BUMP_THRESHOLD = 10

# Window for the "recent" tab
RECENT_BUMP_WINDOW = timedelta(hours=24)
