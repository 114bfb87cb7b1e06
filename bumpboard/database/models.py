"""
bumpboard.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- profiles            — Internal accounts with tier + linked Discord identity
- listings            — Directory entries (Discord servers and bots)
- bump_cooldowns      — One row per (Discord user, listing) pair
- bumps               — Append-only bump history
- auto_bump_settings  — Per-user scheduled bump preferences
- guild_configs       — Discord servers that receive bump announcements
- oauth_states        — One-time CSRF tokens for Discord account linking
- rate_limit_events   — Durable mutation timestamps for API throttling
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Bumpboard ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class SubscriptionTier(enum.StrEnum):
    """Subscription level controlling bump cooldowns."""
    FREE = "free"
    GOLD = "gold"
    PLATINUM = "platinum"
    PREMIUM = "premium"


class ListingStatus(enum.StrEnum):
    """Moderation state.  Only ACTIVE listings are public and bumpable."""
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class ListingType(enum.StrEnum):
    SERVER = "server"
    BOT = "bot"


class BumpType(enum.StrEnum):
    """Where a bump came from."""
    MANUAL = "manual"      # website button
    DISCORD = "discord"    # /bump slash command
    AUTO = "auto"          # scheduled auto-bump


# ---------------------------------------------------------------------------
# Profiles — one row per internal account
# ---------------------------------------------------------------------------
class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    username: Mapped[str | None] = mapped_column(String(100), default=None)
    discord_id: Mapped[int | None] = mapped_column(BigInteger, unique=True, default=None)
    discord_username: Mapped[str | None] = mapped_column(String(100), default=None)
    subscription_tier: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubscriptionTier.FREE.value
    )
    subscription_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    listings: Mapped[list[Listing]] = relationship(
        back_populates="owner", cascade="all, delete-orphan"
    )
    auto_bump: Mapped[AutoBumpSetting | None] = relationship(
        back_populates="profile", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Profile id={self.id} discord={self.discord_id} tier={self.subscription_tier}>"


# ---------------------------------------------------------------------------
# Listings — Discord servers and bots
# ---------------------------------------------------------------------------
class Listing(Base):
    __tablename__ = "listings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(10), nullable=False, default=ListingType.SERVER.value)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    discord_id: Mapped[int | None] = mapped_column(BigInteger, default=None)  # guild or bot snowflake
    invite_url: Mapped[str | None] = mapped_column(String(500), default=None)
    avatar_url: Mapped[str | None] = mapped_column(String(500), default=None)
    tags: Mapped[list | None] = mapped_column(JSONB, default=list)
    member_count: Mapped[int] = mapped_column(Integer, default=0)
    featured: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ListingStatus.PENDING.value
    )
    bump_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_bumped_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    owner: Mapped[Profile] = relationship(back_populates="listings")

    __table_args__ = (
        Index("ix_listings_status_type", "status", "type"),
        Index("ix_listings_owner", "owner_id"),
        Index("ix_listings_discord_id", "discord_id"),
        Index("ix_listings_last_bumped", "last_bumped_at"),
        CheckConstraint("bump_count >= 0", name="ck_listings_bump_count_nonneg"),
    )

    def __repr__(self) -> str:
        return f"<Listing id={self.id} name={self.name!r} status={self.status} bumps={self.bump_count}>"


# ---------------------------------------------------------------------------
# BumpCooldown — keyed by the bumper's Discord id, NOT the internal id
# ---------------------------------------------------------------------------
class BumpCooldown(Base):
    __tablename__ = "bump_cooldowns"

    user_discord_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    listing_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("listings.id", ondelete="CASCADE"), primary_key=True
    )
    last_bump_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<BumpCooldown user={self.user_discord_id} listing={self.listing_id}>"


# ---------------------------------------------------------------------------
# BumpRecord — append-only bump history
# ---------------------------------------------------------------------------
class BumpRecord(Base):
    __tablename__ = "bumps"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    listing_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("listings.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    bump_type: Mapped[str] = mapped_column(String(20), nullable=False, default=BumpType.MANUAL.value)
    bumped_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_bumps_listing_time", "listing_id", "bumped_at"),
        Index("ix_bumps_time", "bumped_at"),
    )

    def __repr__(self) -> str:
        return f"<BumpRecord id={self.id} listing={self.listing_id} type={self.bump_type}>"


# ---------------------------------------------------------------------------
# AutoBumpSetting — scheduled bumps for paid tiers
# ---------------------------------------------------------------------------
class AutoBumpSetting(Base):
    __tablename__ = "auto_bump_settings"

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True
    )
    enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    interval_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=6)
    last_auto_bump_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    profile: Mapped[Profile] = relationship(back_populates="auto_bump")

    def __repr__(self) -> str:
        return f"<AutoBumpSetting user={self.user_id} enabled={self.enabled}>"


# ---------------------------------------------------------------------------
# GuildConfig — where bump announcements go
# ---------------------------------------------------------------------------
class GuildConfig(Base):
    """A Discord server that has opted in to receive bump announcements."""
    __tablename__ = "guild_configs"

    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    bump_channel_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_by: Mapped[int | None] = mapped_column(BigInteger, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<GuildConfig guild={self.guild_id} channel={self.bump_channel_id}>"


# ---------------------------------------------------------------------------
# OAuthState — one-time CSRF tokens for the Discord link flow
# ---------------------------------------------------------------------------
class OAuthState(Base):
    __tablename__ = "oauth_states"

    state: Mapped[str] = mapped_column(String(128), primary_key=True)
    profile_id: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_oauth_states_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<OAuthState state={self.state[:8]!r}...>"


# ---------------------------------------------------------------------------
# RateLimitEvent — durable mutation events for API throttling
# ---------------------------------------------------------------------------
class RateLimitEvent(Base):
    __tablename__ = "rate_limit_events"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_rate_limit_user_ts", "user_id", timestamp.desc()),
        Index("ix_rate_limit_ts", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<RateLimitEvent user={self.user_id!r} ts={self.timestamp}>"
