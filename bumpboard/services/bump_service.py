"""
bumpboard.services.bump_service — Transactional Bump & Status
==============================================================

Shared by the API (website button, dashboard) and the bot (``/bump``).

A bump is one database transaction:

1. Lock the listing row (``SELECT … FOR UPDATE``) and re-check that it is
   active.
2. Read the member's cooldown row for the listing and ask the
   :class:`~bumpboard.engine.bump_policy.BumpPolicy` whether the tier's
   cooldown has elapsed.
3. Upsert the cooldown row, bump the listing's counters, and append a
   :class:`~bumpboard.database.models.BumpRecord`.

Every refusal is raised before the first write, so a failed bump leaves
the store untouched.  Only after the commit is the notifier called, and
its failures never undo a bump.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from bumpboard.database.models import (
    BumpCooldown,
    BumpRecord,
    BumpType,
    Listing,
    ListingStatus,
    Profile,
    SubscriptionTier,
)
from bumpboard.engine.bump_policy import (
    BumpEligibility,
    BumpPolicy,
    as_utc,
    effective_tier,
)
from bumpboard.engine.notify import send_event_notify
from bumpboard.errors import (
    AuthenticationRequired,
    CooldownActive,
    ExternalIdentityRequired,
    ListingNotEligible,
    ListingNotFound,
    StoreFailure,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

# (listing_id, bump_type) → None; called once per successful bump
BumpNotifier = Callable[[str, BumpType], None]

LISTING_BUMPED_EVENT = "listing_bumped"


@dataclass(frozen=True, slots=True)
class BumpResult:
    """What a successful bump changed."""

    listing_id: str
    bump_count: int
    bumped_at: datetime
    cooldown: timedelta
    next_bump_at: datetime


def _now(now: datetime | None) -> datetime:
    return as_utc(now) if now is not None else datetime.now(UTC)


def _require_bumper(session: Session, user_id: str | None) -> Profile:
    if not user_id:
        raise AuthenticationRequired()
    profile = session.get(Profile, user_id)
    if profile is None or profile.discord_id is None:
        raise ExternalIdentityRequired()
    return profile


def _require_active(listing: Listing | None) -> Listing:
    if listing is None:
        raise ListingNotFound()
    if listing.status != ListingStatus.ACTIVE.value:
        raise ListingNotEligible()
    return listing


def _tier_of(profile: Profile, now: datetime) -> SubscriptionTier:
    return effective_tier(profile.subscription_tier, profile.subscription_expires_at, now)


# ---------------------------------------------------------------------------
# Status (read-only)
# ---------------------------------------------------------------------------

def get_bump_status(
    engine: Engine,
    *,
    listing_id: str,
    user_id: str | None,
    policy: BumpPolicy,
    now: datetime | None = None,
) -> BumpEligibility:
    """Can *user_id* bump *listing_id* right now?

    Raises the same precondition errors as :func:`perform_bump`; a cooldown
    is reported through the returned eligibility instead of an exception.
    """
    if not user_id:
        raise AuthenticationRequired()
    now = _now(now)
    with Session(engine) as session:
        profile = _require_bumper(session, user_id)
        _require_active(session.get(Listing, listing_id))
        row = session.get(BumpCooldown, (profile.discord_id, listing_id))
        return policy.check(
            row.last_bump_at if row else None, _tier_of(profile, now), now
        )


def get_bump_statuses(
    engine: Engine,
    *,
    listing_ids: Iterable[str],
    user_id: str | None,
    policy: BumpPolicy,
    now: datetime | None = None,
) -> dict[str, BumpEligibility]:
    """Batch cooldown check for the dashboard, one query for all listings.

    Members without a linked Discord account get an empty mapping.
    """
    listing_ids = list(listing_ids)
    if not user_id or not listing_ids:
        return {}
    now = _now(now)
    with Session(engine) as session:
        profile = session.get(Profile, user_id)
        if profile is None or profile.discord_id is None:
            return {}
        tier = _tier_of(profile, now)
        rows = session.scalars(
            select(BumpCooldown).where(
                BumpCooldown.user_discord_id == profile.discord_id,
                BumpCooldown.listing_id.in_(listing_ids),
            )
        ).all()
        last_by_listing = {r.listing_id: r.last_bump_at for r in rows}
    return {
        lid: policy.check(last_by_listing.get(lid), tier, now) for lid in listing_ids
    }


# ---------------------------------------------------------------------------
# Bump
# ---------------------------------------------------------------------------

def perform_bump(
    engine: Engine,
    *,
    listing_id: str,
    user_id: str | None,
    policy: BumpPolicy,
    notifier: BumpNotifier | None = None,
    bump_type: BumpType | str = BumpType.MANUAL,
    now: datetime | None = None,
) -> BumpResult:
    """Bump *listing_id* on behalf of *user_id*.

    Raises
    ------
    AuthenticationRequired
        No acting user.
    ExternalIdentityRequired
        The user has no linked Discord account.
    ListingNotFound / ListingNotEligible
        The listing is missing or not active.
    CooldownActive
        The tier's cooldown has not elapsed; carries the remaining wait.
    StoreFailure
        The transaction could not be committed.
    """
    if not user_id:
        raise AuthenticationRequired()
    bump_type = BumpType(bump_type)
    now = _now(now)

    with Session(engine) as session:
        try:
            profile = _require_bumper(session, user_id)
            discord_id = profile.discord_id
            tier = _tier_of(profile, now)
            listing = _require_active(
                session.scalar(
                    select(Listing).where(Listing.id == listing_id).with_for_update()
                )
            )
            cooldown_row = session.get(
                BumpCooldown, (discord_id, listing_id), with_for_update=True
            )
            eligibility = policy.check(
                cooldown_row.last_bump_at if cooldown_row else None, tier, now
            )
            if not eligibility.allowed:
                logger.info(
                    "Bump refused: user=%s listing=%s wait=%s",
                    user_id, listing_id, eligibility.wait_text,
                )
                raise CooldownActive(eligibility)

            if cooldown_row is None:
                session.add(
                    BumpCooldown(
                        user_discord_id=discord_id,
                        listing_id=listing_id,
                        last_bump_at=now,
                    )
                )
            else:
                cooldown_row.last_bump_at = now

            listing.last_bumped_at = now
            listing.bump_count = (listing.bump_count or 0) + 1
            session.add(
                BumpRecord(
                    listing_id=listing_id,
                    user_id=user_id,
                    bump_type=bump_type.value,
                    bumped_at=now,
                )
            )
            bump_count = listing.bump_count
            session.commit()

        except IntegrityError:
            session.rollback()
            blocked = _lost_race(session, policy, discord_id, listing_id, tier, now)
            if blocked is not None:
                logger.info(
                    "Bump lost a race: user=%s listing=%s wait=%s",
                    user_id, listing_id, blocked.wait_text,
                )
                raise CooldownActive(blocked) from None
            logger.exception("Bump failed to commit: user=%s listing=%s", user_id, listing_id)
            raise StoreFailure() from None
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Bump failed to commit: user=%s listing=%s", user_id, listing_id)
            raise StoreFailure() from None

    cooldown = eligibility.cooldown
    logger.info(
        "Listing %s bumped by %s (%s), total=%d", listing_id, user_id, bump_type.value, bump_count
    )

    if notifier is not None:
        try:
            notifier(listing_id, bump_type)
        except Exception:
            logger.warning(
                "Bump notification failed for listing %s", listing_id, exc_info=True
            )

    return BumpResult(
        listing_id=listing_id,
        bump_count=bump_count,
        bumped_at=now,
        cooldown=cooldown,
        next_bump_at=now + cooldown,
    )


def _lost_race(
    session: Session,
    policy: BumpPolicy,
    discord_id: int,
    listing_id: str,
    tier: SubscriptionTier,
    now: datetime,
) -> BumpEligibility | None:
    """Refusal to report if a concurrent bump committed the cooldown row first.

    ``None`` when no stored row blocks the bump; the conflict was then some
    other write failure.
    """
    row = session.get(BumpCooldown, (discord_id, listing_id))
    if row is None:
        return None
    eligibility = policy.check(row.last_bump_at, tier, now)
    return None if eligibility.allowed else eligibility


# ---------------------------------------------------------------------------
# Notification
# ---------------------------------------------------------------------------

def pg_notifier(engine: Engine) -> BumpNotifier:
    """Notifier that tells the bot about a bump via PG NOTIFY."""

    def _notify(listing_id: str, bump_type: BumpType) -> None:
        send_event_notify(
            engine,
            {
                "type": LISTING_BUMPED_EVENT,
                "listing_id": listing_id,
                "bump_type": BumpType(bump_type).value,
            },
        )

    return _notify
