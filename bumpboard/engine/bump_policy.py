"""
bumpboard.engine.bump_policy — Cooldown & Eligibility Rules
============================================================

Pure functions, no I/O.  Every place that decides whether a member may
bump a listing (website button, dashboard, ``/bump`` slash command,
auto-bump loop) asks the same :class:`BumpPolicy`, so the tier → cooldown
table exists exactly once.

A member may bump a listing when no cooldown row exists for the pair, or
when at least the tier's cooldown has elapsed since the row's
``last_bump_at``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from bumpboard.constants import TIER_COOLDOWNS
from bumpboard.database.models import SubscriptionTier

if TYPE_CHECKING:
    from bumpboard.config import BumpboardConfig

_ZERO = timedelta(0)


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes (SQLite returns them) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def parse_tier(tier: str | SubscriptionTier | None) -> SubscriptionTier:
    """Coerce a stored tier value; anything unknown counts as free."""
    if isinstance(tier, SubscriptionTier):
        return tier
    try:
        return SubscriptionTier(str(tier).lower())
    except ValueError:
        return SubscriptionTier.FREE


def effective_tier(
    tier: str | SubscriptionTier | None,
    expires_at: datetime | None,
    now: datetime,
) -> SubscriptionTier:
    """Return the tier in force at *now*.

    A paid tier whose ``subscription_expires_at`` has passed falls back to
    free.  A missing expiry means the subscription does not lapse.
    """
    resolved = parse_tier(tier)
    if resolved is SubscriptionTier.FREE or expires_at is None:
        return resolved
    if as_utc(expires_at) <= as_utc(now):
        return SubscriptionTier.FREE
    return resolved


def format_wait(remaining: timedelta) -> str:
    """Render a wait as ``"Xh Ym"``, both parts floored.

    >>> format_wait(timedelta(minutes=125))
    '2h 5m'
    """
    if remaining <= _ZERO:
        return "0h 0m"
    total_minutes = int(remaining.total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m"


@dataclass(frozen=True, slots=True)
class BumpEligibility:
    """Outcome of an eligibility check."""

    allowed: bool
    remaining: timedelta
    cooldown: timedelta
    next_bump_at: datetime | None = None

    @property
    def wait_text(self) -> str:
        return format_wait(self.remaining)

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds until the next bump, rounded up (HTTP ``Retry-After``)."""
        seconds = self.remaining.total_seconds()
        whole = int(seconds)
        return whole + 1 if seconds > whole else whole


class BumpPolicy:
    """The tier → cooldown table plus the eligibility check built on it.

    Parameters
    ----------
    overrides:
        Optional ``{tier: hours}`` mapping that replaces individual entries
        of :data:`~bumpboard.constants.TIER_COOLDOWNS`.
    """

    def __init__(self, overrides: Mapping[str, float] | None = None) -> None:
        table = dict(TIER_COOLDOWNS)
        for tier, hours in (overrides or {}).items():
            table[SubscriptionTier(tier)] = timedelta(hours=hours)
        self._cooldowns: dict[SubscriptionTier, timedelta] = table

    @classmethod
    def from_config(cls, cfg: BumpboardConfig) -> BumpPolicy:
        return cls(cfg.bump_cooldown_hours)

    @property
    def cooldowns(self) -> dict[SubscriptionTier, timedelta]:
        return dict(self._cooldowns)

    def cooldown_duration(self, tier: str | SubscriptionTier | None) -> timedelta:
        return self._cooldowns[parse_tier(tier)]

    def check(
        self,
        last_bump_at: datetime | None,
        tier: str | SubscriptionTier | None,
        now: datetime,
    ) -> BumpEligibility:
        """Decide whether a bump is allowed at *now*.

        *last_bump_at* is the cooldown row's timestamp for this
        (member, listing) pair, or ``None`` when the pair has never bumped.
        """
        cooldown = self.cooldown_duration(tier)
        if last_bump_at is None:
            return BumpEligibility(allowed=True, remaining=_ZERO, cooldown=cooldown)

        last = as_utc(last_bump_at)
        elapsed = as_utc(now) - last
        if elapsed >= cooldown:
            return BumpEligibility(allowed=True, remaining=_ZERO, cooldown=cooldown)

        return BumpEligibility(
            allowed=False,
            remaining=cooldown - elapsed,
            cooldown=cooldown,
            next_bump_at=last + cooldown,
        )
