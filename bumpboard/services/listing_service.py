"""
bumpboard.services.listing_service — Listing CRUD
==================================================

Owners create listings (always ``pending``), edit their descriptive fields,
and delete them.  Moderation status and the bump counters are never
writable from here; bumps change them through
:mod:`bumpboard.services.bump_service`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from bumpboard.database.models import (
    BumpRecord,
    Listing,
    ListingStatus,
    ListingType,
    Profile,
)
from bumpboard.errors import ListingNotFound, NotListingOwner

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

# Fields an owner may set on create / update.  Everything else is frozen.
EDITABLE_FIELDS: frozenset[str] = frozenset({
    "name",
    "description",
    "discord_id",
    "invite_url",
    "avatar_url",
    "tags",
    "member_count",
})


def _check_fields(fields: dict[str, Any]) -> None:
    frozen = set(fields) - EDITABLE_FIELDS
    if frozen:
        raise ValueError(f"Fields cannot be changed by the owner: {sorted(frozen)}")


def _expunged(session: Session, rows):
    for r in rows:
        session.expunge(r)
    return list(rows)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_listing(engine: Engine, listing_id: str) -> Listing | None:
    with Session(engine) as session:
        listing = session.get(Listing, listing_id)
        if listing is not None:
            session.expunge(listing)
        return listing


def get_listing_by_discord_id(
    engine: Engine, discord_id: int, listing_type: ListingType = ListingType.SERVER
) -> Listing | None:
    """Find the listing for a guild (or bot) snowflake, preferring an active one."""
    with Session(engine) as session:
        rows = session.scalars(
            select(Listing)
            .where(Listing.discord_id == discord_id, Listing.type == listing_type.value)
            .order_by(Listing.created_at)
        ).all()
        if not rows:
            return None
        chosen = next((r for r in rows if r.status == ListingStatus.ACTIVE.value), rows[0])
        session.expunge(chosen)
        return chosen


def list_public_listings(
    engine: Engine, listing_type: str | None = None
) -> list[Listing]:
    """Every active listing, optionally narrowed to one type."""
    stmt = select(Listing).where(Listing.status == ListingStatus.ACTIVE.value)
    if listing_type:
        stmt = stmt.where(Listing.type == listing_type)
    with Session(engine) as session:
        return _expunged(session, session.scalars(stmt).all())


def list_owner_listings(engine: Engine, owner_id: str) -> list[Listing]:
    """All of an owner's listings regardless of status, newest first."""
    with Session(engine) as session:
        rows = session.scalars(
            select(Listing)
            .where(Listing.owner_id == owner_id)
            .order_by(Listing.created_at.desc())
        ).all()
        return _expunged(session, rows)


def recent_bumps(engine: Engine, listing_id: str, limit: int = 20) -> list[BumpRecord]:
    with Session(engine) as session:
        rows = session.scalars(
            select(BumpRecord)
            .where(BumpRecord.listing_id == listing_id)
            .order_by(BumpRecord.bumped_at.desc(), BumpRecord.id.desc())
            .limit(limit)
        ).all()
        return _expunged(session, rows)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def create_listing(
    engine: Engine,
    owner_id: str,
    *,
    name: str,
    listing_type: ListingType | str = ListingType.SERVER,
    **fields: Any,
) -> Listing:
    """Insert a new ``pending`` listing with zero bumps.

    Raises
    ------
    LookupError
        If *owner_id* has no profile.
    ValueError
        If *fields* contains anything outside :data:`EDITABLE_FIELDS`.
    """
    _check_fields(fields)
    listing_type = ListingType(listing_type)
    with Session(engine) as session:
        if session.get(Profile, owner_id) is None:
            raise LookupError(f"Profile {owner_id} not found")
        listing = Listing(
            owner_id=owner_id,
            type=listing_type.value,
            name=name,
            status=ListingStatus.PENDING.value,
            bump_count=0,
            last_bumped_at=None,
            **fields,
        )
        if listing.tags is None:
            listing.tags = []
        session.add(listing)
        session.commit()
        session.refresh(listing)
        session.expunge(listing)
        logger.info("Listing %s created by %s (%s)", listing.id, owner_id, listing_type.value)
        return listing


def update_listing(
    engine: Engine, listing_id: str, owner_id: str, **changes: Any
) -> Listing:
    """Apply owner edits to descriptive fields.

    Raises
    ------
    ListingNotFound
        If the listing does not exist.
    NotListingOwner
        If *owner_id* does not own the listing.
    ValueError
        If *changes* touches a frozen field.
    """
    _check_fields(changes)
    with Session(engine) as session:
        listing = session.get(Listing, listing_id)
        if listing is None:
            raise ListingNotFound()
        if listing.owner_id != owner_id:
            raise NotListingOwner()
        for key, value in changes.items():
            setattr(listing, key, value)
        session.commit()
        session.refresh(listing)
        session.expunge(listing)
        logger.info("Listing %s updated: %s", listing_id, sorted(changes))
        return listing


def delete_listing(engine: Engine, listing_id: str, owner_id: str) -> None:
    with Session(engine) as session:
        listing = session.get(Listing, listing_id)
        if listing is None:
            raise ListingNotFound()
        if listing.owner_id != owner_id:
            raise NotListingOwner()
        session.delete(listing)
        session.commit()
        logger.info("Listing %s deleted by %s", listing_id, owner_id)
