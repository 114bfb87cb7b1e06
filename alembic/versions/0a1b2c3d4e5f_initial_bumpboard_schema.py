"""Initial Bumpboard schema

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0a1b2c3d4e5f"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create profiles, listings, bump bookkeeping, and support tables."""
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(100)),
        sa.Column("discord_id", sa.BigInteger(), unique=True),
        sa.Column("discord_username", sa.String(100)),
        sa.Column("subscription_tier", sa.String(20), nullable=False, server_default="free"),
        sa.Column("subscription_expires_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )

    op.create_table(
        "listings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "owner_id", sa.String(36),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("type", sa.String(10), nullable=False, server_default="server"),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("discord_id", sa.BigInteger()),
        sa.Column("invite_url", sa.String(500)),
        sa.Column("avatar_url", sa.String(500)),
        sa.Column("tags", postgresql.JSONB(), server_default="[]"),
        sa.Column("member_count", sa.Integer(), server_default="0"),
        sa.Column("featured", sa.Boolean(), server_default=sa.false()),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("bump_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_bumped_at", sa.DateTime(timezone=True)),
        *_timestamps(),
        sa.CheckConstraint("bump_count >= 0", name="ck_listings_bump_count_nonneg"),
    )
    op.create_index("ix_listings_status_type", "listings", ["status", "type"])
    op.create_index("ix_listings_owner", "listings", ["owner_id"])
    op.create_index("ix_listings_discord_id", "listings", ["discord_id"])
    op.create_index("ix_listings_last_bumped", "listings", ["last_bumped_at"])

    op.create_table(
        "bump_cooldowns",
        sa.Column("user_discord_id", sa.BigInteger(), primary_key=True),
        sa.Column(
            "listing_id", sa.String(36),
            sa.ForeignKey("listings.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("last_bump_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "bumps",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "listing_id", sa.String(36),
            sa.ForeignKey("listings.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("bump_type", sa.String(20), nullable=False, server_default="manual"),
        sa.Column(
            "bumped_at", sa.DateTime(timezone=True),
            nullable=False, server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_bumps_listing_time", "bumps", ["listing_id", "bumped_at"])
    op.create_index("ix_bumps_time", "bumps", ["bumped_at"])

    op.create_table(
        "auto_bump_settings",
        sa.Column(
            "user_id", sa.String(36),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("enabled", sa.Boolean(), server_default=sa.false()),
        sa.Column("interval_hours", sa.Integer(), nullable=False, server_default="6"),
        sa.Column("last_auto_bump_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "guild_configs",
        sa.Column("guild_id", sa.BigInteger(), primary_key=True),
        sa.Column("bump_channel_id", sa.BigInteger()),
        sa.Column("active", sa.Boolean(), server_default=sa.true()),
        sa.Column("updated_by", sa.BigInteger()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "oauth_states",
        sa.Column("state", sa.String(128), primary_key=True),
        sa.Column("profile_id", sa.String(36), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            nullable=False, server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_oauth_states_created_at", "oauth_states", ["created_at"])

    op.create_table(
        "rate_limit_events",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column(
            "timestamp", sa.DateTime(timezone=True),
            nullable=False, server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_rate_limit_user_ts", "rate_limit_events",
        ["user_id", sa.text("timestamp DESC")],
    )
    op.create_index("ix_rate_limit_ts", "rate_limit_events", ["timestamp"])


def downgrade() -> None:
    op.drop_index("ix_rate_limit_ts", table_name="rate_limit_events")
    op.drop_index("ix_rate_limit_user_ts", table_name="rate_limit_events")
    op.drop_table("rate_limit_events")
    op.drop_index("ix_oauth_states_created_at", table_name="oauth_states")
    op.drop_table("oauth_states")
    op.drop_table("guild_configs")
    op.drop_table("auto_bump_settings")
    op.drop_index("ix_bumps_time", table_name="bumps")
    op.drop_index("ix_bumps_listing_time", table_name="bumps")
    op.drop_table("bumps")
    op.drop_table("bump_cooldowns")
    for name in (
        "ix_listings_last_bumped",
        "ix_listings_discord_id",
        "ix_listings_owner",
        "ix_listings_status_type",
    ):
        op.drop_index(name, table_name="listings")
    op.drop_table("listings")
    op.drop_table("profiles")
