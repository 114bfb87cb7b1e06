"""
bumpboard.services.profile_service — Profiles & Discord Identity Link
======================================================================

A profile is the internal account behind a JWT ``sub``.  Bumping needs a
linked Discord identity because cooldowns are keyed by the Discord id.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from bumpboard.database.models import Profile

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


class DiscordIdentityInUse(Exception):
    """The Discord account is already linked to a different profile."""


def _detached(session: Session, profile: Profile) -> Profile:
    session.refresh(profile)
    session.expunge(profile)
    return profile


def get_profile(engine: Engine, profile_id: str) -> Profile | None:
    with Session(engine) as session:
        profile = session.get(Profile, profile_id)
        if profile is not None:
            session.expunge(profile)
        return profile


def get_profile_by_discord_id(engine: Engine, discord_id: int) -> Profile | None:
    with Session(engine) as session:
        profile = session.scalar(select(Profile).where(Profile.discord_id == discord_id))
        if profile is not None:
            session.expunge(profile)
        return profile


def get_or_create_profile(
    engine: Engine, profile_id: str, username: str | None = None
) -> Profile:
    """Fetch the profile for *profile_id*, inserting a free-tier row if absent."""
    with Session(engine) as session:
        profile = session.get(Profile, profile_id)
        if profile is None:
            profile = Profile(id=profile_id, username=username)
            session.add(profile)
            logger.info("Created profile %s", profile_id)
        elif username and profile.username != username:
            profile.username = username
        session.commit()
        return _detached(session, profile)


def link_discord_identity(
    engine: Engine, profile_id: str, discord_id: int, discord_username: str | None
) -> Profile:
    """Attach a Discord account to *profile_id*.

    Raises
    ------
    LookupError
        If the profile does not exist.
    DiscordIdentityInUse
        If *discord_id* is already linked to another profile.
    """
    with Session(engine) as session:
        profile = session.get(Profile, profile_id)
        if profile is None:
            raise LookupError(f"Profile {profile_id} not found")

        owner = session.scalar(select(Profile).where(Profile.discord_id == discord_id))
        if owner is not None and owner.id != profile_id:
            raise DiscordIdentityInUse(
                f"Discord account {discord_id} is already linked to another profile"
            )

        profile.discord_id = discord_id
        profile.discord_username = discord_username
        session.commit()
        logger.info("Linked Discord %s to profile %s", discord_id, profile_id)
        return _detached(session, profile)


def unlink_discord_identity(engine: Engine, profile_id: str) -> Profile:
    with Session(engine) as session:
        profile = session.get(Profile, profile_id)
        if profile is None:
            raise LookupError(f"Profile {profile_id} not found")
        profile.discord_id = None
        profile.discord_username = None
        session.commit()
        logger.info("Unlinked Discord identity from profile %s", profile_id)
        return _detached(session, profile)
