"""
bumpboard.services.auto_bump_service — Scheduled Bumps for Paid Tiers
======================================================================

Paid members can let the bot bump all of their active listings on a fixed
interval.  The bot's tasks cog calls :func:`run_auto_bumps` periodically;
each due member's listings are bumped one transaction at a time so a bad
row never blocks the rest of the run.

Auto bumps leave ``bump_cooldowns`` alone: those rows belong to a human's
Discord identity.  A listing is skipped when its own ``last_bumped_at`` is
still inside the owner's tier cooldown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bumpboard.constants import AUTO_BUMP_TIERS
from bumpboard.database.models import (
    AutoBumpSetting,
    BumpRecord,
    BumpType,
    Listing,
    ListingStatus,
    Profile,
)
from bumpboard.engine.bump_policy import BumpPolicy, as_utc, effective_tier

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from bumpboard.services.bump_service import BumpNotifier

logger = logging.getLogger(__name__)


class AutoBumpNotAllowed(Exception):
    """The member's tier does not include auto-bumping."""


@dataclass
class AutoBumpReport:
    users_checked: int = 0
    bumped: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def get_auto_bump_settings(engine: Engine, user_id: str) -> AutoBumpSetting | None:
    with Session(engine) as session:
        setting = session.get(AutoBumpSetting, user_id)
        if setting is not None:
            session.expunge(setting)
        return setting


def update_auto_bump_settings(
    engine: Engine,
    user_id: str,
    *,
    enabled: bool,
    interval_hours: int,
    policy: BumpPolicy,
    now: datetime | None = None,
) -> AutoBumpSetting:
    """Create or update a member's auto-bump preferences.

    Raises
    ------
    LookupError
        If the profile does not exist.
    AutoBumpNotAllowed
        If *enabled* is requested on a tier without auto-bump.
    ValueError
        If *interval_hours* is shorter than the tier's cooldown.
    """
    now = as_utc(now) if now is not None else datetime.now(UTC)
    with Session(engine) as session:
        profile = session.get(Profile, user_id)
        if profile is None:
            raise LookupError(f"Profile {user_id} not found")

        tier = effective_tier(profile.subscription_tier, profile.subscription_expires_at, now)
        if enabled and tier not in AUTO_BUMP_TIERS:
            raise AutoBumpNotAllowed(f"Auto-bump is not available on the {tier.value} tier")

        cooldown = policy.cooldown_duration(tier)
        if timedelta(hours=interval_hours) < cooldown:
            raise ValueError(
                f"interval_hours must be at least {cooldown.total_seconds() / 3600:g} "
                f"for the {tier.value} tier"
            )

        setting = session.get(AutoBumpSetting, user_id)
        if setting is None:
            setting = AutoBumpSetting(user_id=user_id)
            session.add(setting)
        setting.enabled = enabled
        setting.interval_hours = interval_hours
        session.commit()
        session.refresh(setting)
        session.expunge(setting)
        logger.info(
            "Auto-bump for %s: enabled=%s interval=%dh", user_id, enabled, interval_hours
        )
        return setting


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------

def _is_due(setting: AutoBumpSetting, now: datetime) -> bool:
    last = as_utc(setting.last_auto_bump_at)
    return last is None or now - last >= timedelta(hours=setting.interval_hours)


def _bump_one(
    engine: Engine, listing_id: str, owner_id: str, tier, policy: BumpPolicy, now: datetime
) -> bool:
    """Bump one listing in its own transaction.  False when skipped."""
    with Session(engine) as session:
        listing = session.scalar(
            select(Listing).where(Listing.id == listing_id).with_for_update()
        )
        if listing is None or listing.status != ListingStatus.ACTIVE.value:
            return False
        if not policy.check(listing.last_bumped_at, tier, now).allowed:
            return False
        listing.last_bumped_at = now
        listing.bump_count = (listing.bump_count or 0) + 1
        session.add(
            BumpRecord(
                listing_id=listing_id,
                user_id=owner_id,
                bump_type=BumpType.AUTO.value,
                bumped_at=now,
            )
        )
        session.commit()
        return True


def run_auto_bumps(
    engine: Engine,
    policy: BumpPolicy,
    notifier: BumpNotifier | None = None,
    now: datetime | None = None,
) -> AutoBumpReport:
    """Bump every due member's active listings.  Returns what happened."""
    now = as_utc(now) if now is not None else datetime.now(UTC)
    report = AutoBumpReport()

    with Session(engine) as session:
        due = []
        for setting, profile in session.execute(
            select(AutoBumpSetting, Profile)
            .join(Profile, Profile.id == AutoBumpSetting.user_id)
            .where(AutoBumpSetting.enabled.is_(True))
        ).all():
            tier = effective_tier(profile.subscription_tier, profile.subscription_expires_at, now)
            if tier in AUTO_BUMP_TIERS and _is_due(setting, now):
                due.append((profile.id, tier))

        owner_ids = [owner_id for owner_id, _ in due]
        listing_ids: dict[str, list[str]] = {owner_id: [] for owner_id in owner_ids}
        if owner_ids:
            for listing_id, owner_id in session.execute(
                select(Listing.id, Listing.owner_id).where(
                    Listing.owner_id.in_(owner_ids),
                    Listing.status == ListingStatus.ACTIVE.value,
                )
            ).all():
                listing_ids[owner_id].append(listing_id)

    for owner_id, tier in due:
        report.users_checked += 1
        for listing_id in listing_ids[owner_id]:
            try:
                bumped = _bump_one(engine, listing_id, owner_id, tier, policy, now)
            except SQLAlchemyError:
                logger.exception("Auto-bump failed for listing %s", listing_id)
                report.failed.append(listing_id)
                continue

            if not bumped:
                report.skipped.append(listing_id)
                continue

            report.bumped.append(listing_id)
            if notifier is not None:
                try:
                    notifier(listing_id, BumpType.AUTO)
                except Exception:
                    logger.warning(
                        "Bump notification failed for listing %s", listing_id, exc_info=True
                    )

        with Session(engine) as session:
            setting = session.get(AutoBumpSetting, owner_id)
            if setting is not None:
                setting.last_auto_bump_at = now
                session.commit()

    if report.users_checked:
        logger.info(
            "Auto-bump run: %d users, %d bumped, %d skipped, %d failed",
            report.users_checked, len(report.bumped), len(report.skipped), len(report.failed),
        )
    return report
