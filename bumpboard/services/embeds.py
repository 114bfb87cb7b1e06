"""
bumpboard.services.embeds — Discord embed builders
===================================================

Cogs and the announcement service hand data in; layout stays here.
"""

from __future__ import annotations

from datetime import datetime

import discord

from bumpboard.database.models import BumpType, Listing, ListingType

BUMP_SOURCE_LABELS: dict[BumpType, str] = {
    BumpType.MANUAL: "Website",
    BumpType.DISCORD: "Discord /bump",
    BumpType.AUTO: "Auto-bump",
}


def build_bump_embed(
    listing: Listing,
    bump_type: BumpType | str,
    site_url: str | None = None,
) -> discord.Embed:
    """Public announcement posted when a listing is bumped."""
    is_bot = listing.type == ListingType.BOT.value
    embed = discord.Embed(
        title="\U0001f916 Bot Bumped!" if is_bot else "\U0001f680 Server Bumped!",
        description=f"**{listing.name}** was just bumped to the top of the directory.",
        color=discord.Color.blurple(),
    )
    if site_url:
        embed.url = f"{site_url.rstrip('/')}/listings/{listing.id}"

    if not is_bot:
        embed.add_field(name="Members", value=f"{listing.member_count or 0:,}", inline=True)
    embed.add_field(name="Total Bumps", value=f"{listing.bump_count or 0:,}", inline=True)
    try:
        source = BUMP_SOURCE_LABELS[BumpType(bump_type)]
    except ValueError:
        source = str(bump_type)
    embed.add_field(name="Bumped via", value=source, inline=True)

    if listing.avatar_url:
        embed.set_thumbnail(url=listing.avatar_url)
    if listing.invite_url:
        label = "Invite the bot" if is_bot else "Join the server"
        embed.add_field(name="Link", value=f"[{label}]({listing.invite_url})", inline=False)
    return embed


def build_bump_reply(listing_name: str, next_bump_at: datetime) -> discord.Embed:
    """Ephemeral confirmation for the member who ran ``/bump``."""
    ts = int(next_bump_at.timestamp())
    return discord.Embed(
        title="✅ Bumped!",
        description=(
            f"**{listing_name}** has been bumped.\n"
            f"You can bump it again <t:{ts}:R>."
        ),
        color=discord.Color.green(),
    )


def build_cooldown_embed(wait_text: str, next_bump_at: datetime | None) -> discord.Embed:
    description = f"You can bump this listing again in **{wait_text}**."
    if next_bump_at is not None:
        description += f"\n(<t:{int(next_bump_at.timestamp())}:t>)"
    return discord.Embed(
        title="⏳ Cooldown active",
        description=description,
        color=discord.Color.orange(),
    )
