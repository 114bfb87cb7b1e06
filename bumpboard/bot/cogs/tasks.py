"""
bumpboard.bot.cogs.tasks — Periodic Background Tasks
=====================================================

- **Auto-bump** — every ``auto_bump_check_minutes`` (default 15), bumps
  the listings of paid members whose auto-bump interval has elapsed.

Runs in the bot process through ``run_db()`` so the event loop never
blocks on the database.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from discord.ext import commands, tasks

from bumpboard.database.engine import run_db
from bumpboard.services.auto_bump_service import run_auto_bumps
from bumpboard.services.bump_service import pg_notifier

if TYPE_CHECKING:
    from bumpboard.bot.core import BumpboardBot

logger = logging.getLogger(__name__)


class PeriodicTasks(commands.Cog):
    """Cog for scheduled background jobs."""

    def __init__(self, bot: BumpboardBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        self.auto_bump_loop.change_interval(minutes=self.bot.cfg.auto_bump_check_minutes)
        self.auto_bump_loop.start()

    async def cog_unload(self) -> None:
        self.auto_bump_loop.cancel()

    @tasks.loop(minutes=15)
    async def auto_bump_loop(self):
        """Bump every due member's active listings."""
        try:
            report = await run_db(
                run_auto_bumps,
                self.bot.engine,
                self.bot.policy,
                pg_notifier(self.bot.engine),
            )
            if report.bumped:
                logger.info("Auto-bump task bumped %d listings", len(report.bumped))
        except Exception:
            logger.exception("Auto-bump task failed", extra={"task": "auto_bump"})

    @auto_bump_loop.before_loop
    async def _wait_auto_bump(self):
        await self.bot.wait_until_ready()


async def setup(bot: BumpboardBot) -> None:
    await bot.add_cog(PeriodicTasks(bot))
