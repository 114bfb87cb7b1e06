"""
tests/test_listing_service.py — Listing CRUD and read helpers
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from bumpboard.database.models import ListingStatus, ListingType, SubscriptionTier
from bumpboard.errors import ListingNotFound, NotListingOwner
from bumpboard.services import listing_service
from bumpboard.services.bump_service import perform_bump
from conftest import NOW, make_listing, make_profile


class TestCreate:
    def test_new_listing_is_pending_with_zero_bumps(self, db_engine):
        make_profile(db_engine)
        listing = listing_service.create_listing(
            db_engine, "user-1", name="Cozy Corner", tags=["chill"], member_count=42
        )
        assert listing.status == ListingStatus.PENDING.value
        assert listing.bump_count == 0
        assert listing.last_bumped_at is None
        assert listing.tags == ["chill"]
        assert listing.type == "server"

    def test_bot_listing(self, db_engine):
        make_profile(db_engine)
        listing = listing_service.create_listing(
            db_engine, "user-1", name="Helper", listing_type="bot"
        )
        assert listing.type == ListingType.BOT.value

    def test_requires_profile(self, db_engine):
        with pytest.raises(LookupError):
            listing_service.create_listing(db_engine, "ghost", name="Nope")

    @pytest.mark.parametrize("field", ["status", "bump_count", "featured", "last_bumped_at"])
    def test_frozen_fields_rejected(self, db_engine, field):
        make_profile(db_engine)
        with pytest.raises(ValueError, match="cannot be changed"):
            listing_service.create_listing(db_engine, "user-1", name="X", **{field: "active"})


class TestUpdate:
    def test_owner_can_edit(self, db_engine):
        make_profile(db_engine)
        listing = make_listing(db_engine)
        updated = listing_service.update_listing(
            db_engine, listing.id, "user-1", description="Now with more plants"
        )
        assert updated.description == "Now with more plants"

    def test_edit_keeps_bump_state(self, db_engine, policy):
        make_profile(db_engine)
        listing = make_listing(db_engine)
        perform_bump(db_engine, listing_id=listing.id, user_id="user-1", policy=policy, now=NOW)
        updated = listing_service.update_listing(db_engine, listing.id, "user-1", name="Renamed")
        assert updated.bump_count == 1
        assert updated.status == ListingStatus.ACTIVE.value

    def test_non_owner_rejected(self, db_engine):
        make_profile(db_engine)
        listing = make_listing(db_engine)
        with pytest.raises(NotListingOwner):
            listing_service.update_listing(db_engine, listing.id, "user-2", name="Mine now")

    def test_missing_listing(self, db_engine):
        with pytest.raises(ListingNotFound):
            listing_service.update_listing(db_engine, "nope", "user-1", name="X")

    def test_cannot_touch_bump_count(self, db_engine):
        make_profile(db_engine)
        listing = make_listing(db_engine)
        with pytest.raises(ValueError):
            listing_service.update_listing(db_engine, listing.id, "user-1", bump_count=0)


class TestDelete:
    def test_owner_deletes(self, db_engine):
        make_profile(db_engine)
        listing = make_listing(db_engine)
        listing_service.delete_listing(db_engine, listing.id, "user-1")
        assert listing_service.get_listing(db_engine, listing.id) is None

    def test_non_owner_rejected(self, db_engine):
        make_profile(db_engine)
        listing = make_listing(db_engine)
        with pytest.raises(NotListingOwner):
            listing_service.delete_listing(db_engine, listing.id, "user-2")
        assert listing_service.get_listing(db_engine, listing.id) is not None


class TestReads:
    def test_public_listings_are_active_only(self, db_engine):
        make_profile(db_engine)
        make_listing(db_engine, name="Live")
        make_listing(db_engine, name="Waiting", status=ListingStatus.PENDING)
        make_listing(db_engine, name="Banned", status=ListingStatus.SUSPENDED)
        make_listing(db_engine, name="Bot", listing_type=ListingType.BOT)

        names = {item.name for item in listing_service.list_public_listings(db_engine)}
        assert names == {"Live", "Bot"}
        bots = listing_service.list_public_listings(db_engine, "bot")
        assert [item.name for item in bots] == ["Bot"]

    def test_owner_listings_newest_first_any_status(self, db_engine):
        make_profile(db_engine)
        make_profile(db_engine, "user-2", discord_id=222)
        make_listing(db_engine, name="Old", created_at=NOW - timedelta(days=2))
        make_listing(
            db_engine, name="New", status=ListingStatus.PENDING, created_at=NOW
        )
        make_listing(db_engine, "user-2", name="Someone else's")

        names = [item.name for item in listing_service.list_owner_listings(db_engine, "user-1")]
        assert names == ["New", "Old"]

    def test_by_discord_id_prefers_active(self, db_engine):
        make_profile(db_engine)
        make_listing(
            db_engine, name="Draft", status=ListingStatus.PENDING, discord_id=42,
            created_at=NOW - timedelta(days=1),
        )
        make_listing(db_engine, name="Approved", discord_id=42, created_at=NOW)

        found = listing_service.get_listing_by_discord_id(db_engine, 42)
        assert found.name == "Approved"
        assert listing_service.get_listing_by_discord_id(db_engine, 42, ListingType.BOT) is None
        assert listing_service.get_listing_by_discord_id(db_engine, 43) is None

    def test_recent_bumps_newest_first(self, db_engine, policy):
        make_profile(db_engine, tier=SubscriptionTier.PLATINUM)
        listing = make_listing(db_engine)
        for hours in (0, 2, 4):
            perform_bump(
                db_engine, listing_id=listing.id, user_id="user-1", policy=policy,
                now=NOW + timedelta(hours=hours),
            )
        history = listing_service.recent_bumps(db_engine, listing.id, limit=2)
        assert len(history) == 2
        assert history[0].id > history[1].id
