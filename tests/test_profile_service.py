"""
tests/test_profile_service.py — Profiles and Discord identity linking
"""

from __future__ import annotations

import pytest

from bumpboard.database.models import SubscriptionTier
from bumpboard.services.profile_service import (
    DiscordIdentityInUse,
    get_or_create_profile,
    get_profile,
    get_profile_by_discord_id,
    link_discord_identity,
    unlink_discord_identity,
)
from conftest import make_profile


class TestGetOrCreate:
    def test_creates_free_profile(self, db_engine):
        profile = get_or_create_profile(db_engine, "new-user", "Newbie")
        assert profile.username == "Newbie"
        assert profile.subscription_tier == SubscriptionTier.FREE.value
        assert profile.discord_id is None

    def test_returns_existing_and_refreshes_username(self, db_engine):
        make_profile(db_engine, username="old")
        profile = get_or_create_profile(db_engine, "user-1", "fresh")
        assert profile.discord_id == 111
        assert get_profile(db_engine, "user-1").username == "fresh"

    def test_missing_profile(self, db_engine):
        assert get_profile(db_engine, "nobody") is None


class TestDiscordLink:
    def test_link_and_lookup(self, db_engine):
        make_profile(db_engine, discord_id=None)
        profile = link_discord_identity(db_engine, "user-1", 555, "tester")
        assert profile.discord_id == 555
        assert get_profile_by_discord_id(db_engine, 555).id == "user-1"

    def test_relink_same_account_is_fine(self, db_engine):
        make_profile(db_engine, discord_id=111)
        profile = link_discord_identity(db_engine, "user-1", 111, "tester")
        assert profile.discord_id == 111

    def test_account_linked_elsewhere(self, db_engine):
        make_profile(db_engine, "user-1", discord_id=111)
        make_profile(db_engine, "user-2", discord_id=None)
        with pytest.raises(DiscordIdentityInUse):
            link_discord_identity(db_engine, "user-2", 111, "thief")
        assert get_profile(db_engine, "user-2").discord_id is None

    def test_unknown_profile(self, db_engine):
        with pytest.raises(LookupError):
            link_discord_identity(db_engine, "ghost", 1, "x")

    def test_unlink(self, db_engine):
        make_profile(db_engine, discord_id=111)
        profile = unlink_discord_identity(db_engine, "user-1")
        assert profile.discord_id is None
        assert profile.discord_username is None
        assert get_profile_by_discord_id(db_engine, 111) is None
