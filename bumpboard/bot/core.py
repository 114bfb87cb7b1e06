"""
bumpboard.bot.core — Bot Instance & Cog Loader
===============================================

:class:`BumpboardBot` carries the shared config, DB engine, bump policy
and NOTIFY listener so every cog reaches them through ``self.bot.*``.
On startup it loads the cogs, syncs the slash-command tree (guild-scoped
when ``DEV_GUILD_ID`` is set), starts the announcement throttle, and
subscribes to ``listing_bumped`` events.
"""

from __future__ import annotations

import asyncio
import logging
import os

import discord
from discord.ext import commands
from sqlalchemy import Engine

from bumpboard.config import BumpboardConfig
from bumpboard.engine.bump_policy import BumpPolicy
from bumpboard.engine.notify import EventListener
from bumpboard.services.announcement_service import (
    on_listing_bumped,
    start_queue,
    stop_queue,
)
from bumpboard.services.bump_service import LISTING_BUMPED_EVENT

logger = logging.getLogger(__name__)

EXTENSIONS: list[str] = [
    "bumpboard.bot.cogs.bump",
    "bumpboard.bot.cogs.tasks",
]


class BumpboardBot(commands.Bot):
    """Bot subclass that carries project-wide state."""

    def __init__(
        self,
        cfg: BumpboardConfig,
        engine: Engine,
        listener: EventListener,
        policy: BumpPolicy | None = None,
    ) -> None:
        # Slash commands only; no privileged intents needed
        intents = discord.Intents.default()

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description=f"{cfg.site_name} — bump your server to the top",
        )

        self.cfg = cfg
        self.engine = engine
        self.listener = listener
        self.policy = policy or BumpPolicy.from_config(cfg)

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load every extension; one broken cog must not take down the bot."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        assert self.user is not None
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

        loop = asyncio.get_running_loop()
        start_queue(loop)
        logger.info("Announcement throttle drain task started.")

        self.listener.register_callback(LISTING_BUMPED_EVENT, self._on_listing_bumped, loop=loop)
        self.listener.start()

    async def close(self) -> None:
        logger.info("Bot shutting down…")
        self.listener.stop()
        stop_queue()
        await super().close()

    async def _on_listing_bumped(self, data: dict) -> None:
        await on_listing_bumped(self, data)
