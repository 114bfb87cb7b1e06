"""
bumpboard.bot.cogs.bump — Bumping from inside Discord
======================================================

- /bump          — bump this server's listing
- /bump-status   — when can I bump this server again?
- /bump-channel  — (Manage Server) choose where bump announcements go

The member is resolved to the Bumpboard profile that linked their Discord
account; the cooldown rules are the same ones the website uses.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from bumpboard.database.engine import run_db
from bumpboard.database.models import BumpType
from bumpboard.errors import BumpError, CooldownActive, ExternalIdentityRequired
from bumpboard.services.announcement_service import set_bump_channel
from bumpboard.services.bump_service import get_bump_status, perform_bump, pg_notifier
from bumpboard.services.embeds import build_bump_reply, build_cooldown_embed
from bumpboard.services.listing_service import get_listing_by_discord_id
from bumpboard.services.profile_service import get_profile_by_discord_id

if TYPE_CHECKING:
    from bumpboard.bot.core import BumpboardBot

logger = logging.getLogger(__name__)


class Bump(commands.Cog, name="Bump"):
    """Slash commands for bumping the current server's listing."""

    def __init__(self, bot: BumpboardBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # Shared lookups
    # -------------------------------------------------------------------
    async def _resolve(self, interaction: discord.Interaction):
        """Return ``(listing, profile)`` or reply with the reason and return None.

        The interaction must already be deferred.
        """
        if interaction.guild_id is None:
            await interaction.followup.send(
                "❌ Use this command inside a server.", ephemeral=True,
            )
            return None

        listing = await run_db(get_listing_by_discord_id, self.bot.engine, interaction.guild_id)
        if listing is None:
            await interaction.followup.send(
                f"❌ This server isn't listed on {self.bot.cfg.site_name} yet.\n"
                f"Add it at {self.bot.cfg.site_url}",
                ephemeral=True,
            )
            return None

        profile = await run_db(get_profile_by_discord_id, self.bot.engine, interaction.user.id)
        if profile is None:
            await self._reply_error(interaction, ExternalIdentityRequired())
            return None
        return listing, profile

    async def _reply_error(self, interaction: discord.Interaction, exc: BumpError) -> None:
        if isinstance(exc, CooldownActive):
            embed = build_cooldown_embed(exc.eligibility.wait_text, exc.eligibility.next_bump_at)
            await interaction.followup.send(embed=embed, ephemeral=True)
            return
        message = f"❌ {exc.message}"
        if isinstance(exc, ExternalIdentityRequired):
            message += f"\nLink it from your dashboard: {self.bot.cfg.site_url}"
        await interaction.followup.send(message, ephemeral=True)

    # -------------------------------------------------------------------
    # /bump
    # -------------------------------------------------------------------
    @app_commands.command(name="bump", description="Bump this server to the top of the directory.")
    async def bump(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        resolved = await self._resolve(interaction)
        if resolved is None:
            return
        listing, profile = resolved

        try:
            result = await run_db(
                perform_bump,
                self.bot.engine,
                listing_id=listing.id,
                user_id=profile.id,
                policy=self.bot.policy,
                notifier=pg_notifier(self.bot.engine),
                bump_type=BumpType.DISCORD,
            )
        except BumpError as exc:
            await self._reply_error(interaction, exc)
            return

        await interaction.followup.send(
            embed=build_bump_reply(listing.name, result.next_bump_at), ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /bump-status
    # -------------------------------------------------------------------
    @app_commands.command(name="bump-status", description="See when you can bump this server again.")
    async def bump_status(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        resolved = await self._resolve(interaction)
        if resolved is None:
            return
        listing, profile = resolved

        try:
            eligibility = await run_db(
                get_bump_status,
                self.bot.engine,
                listing_id=listing.id,
                user_id=profile.id,
                policy=self.bot.policy,
            )
        except BumpError as exc:
            await self._reply_error(interaction, exc)
            return

        if eligibility.allowed:
            await interaction.followup.send(
                f"✅ You can bump **{listing.name}** right now with `/bump`.", ephemeral=True,
            )
        else:
            embed = build_cooldown_embed(eligibility.wait_text, eligibility.next_bump_at)
            await interaction.followup.send(embed=embed, ephemeral=True)

    # -------------------------------------------------------------------
    # /bump-channel
    # -------------------------------------------------------------------
    @app_commands.command(
        name="bump-channel",
        description="Choose the channel for directory bump announcements (empty to turn off).",
    )
    @app_commands.describe(channel="Channel to post bump announcements in")
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_guild=True)
    @app_commands.checks.has_permissions(manage_guild=True)
    async def bump_channel(
        self,
        interaction: discord.Interaction,
        channel: discord.TextChannel | None = None,
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        await run_db(
            set_bump_channel,
            self.bot.engine,
            interaction.guild_id,
            channel.id if channel else None,
            interaction.user.id,
        )
        if channel is None:
            text = "🔕 Bump announcements turned off for this server."
        else:
            text = f"📣 Bump announcements will be posted in {channel.mention}."
        await interaction.followup.send(text, ephemeral=True)


async def setup(bot: BumpboardBot) -> None:
    await bot.add_cog(Bump(bot))
