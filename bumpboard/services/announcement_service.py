"""
bumpboard.services.announcement_service — Bump Announcements
=============================================================

Posts a "Server Bumped!" embed to every guild that opted in with
``/bump-channel``.  Every bump, whether from the website, ``/bump`` or the
auto-bump loop, is published as a PG NOTIFY event (see
:mod:`bumpboard.engine.notify`) and lands in :func:`on_listing_bumped`.

Embed construction lives in :mod:`bumpboard.services.embeds`.
Throttle logic lives in :mod:`bumpboard.services.throttle`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from discord.abc import Messageable
from sqlalchemy import select
from sqlalchemy.orm import Session

from bumpboard.database.engine import run_db
from bumpboard.database.models import BumpType, GuildConfig
from bumpboard.services.embeds import build_bump_embed
from bumpboard.services.listing_service import get_listing
from bumpboard.services.throttle import AnnouncementThrottle

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from bumpboard.bot.core import BumpboardBot

logger = logging.getLogger(__name__)

_throttle = AnnouncementThrottle()


def start_queue(loop: asyncio.AbstractEventLoop) -> None:
    """Start the throttle drain task.  Call from on_ready."""
    _throttle.start(loop)


def stop_queue() -> None:
    _throttle.stop()


# ---------------------------------------------------------------------------
# Guild configs (sync — run via run_db)
# ---------------------------------------------------------------------------
def set_bump_channel(
    engine: Engine, guild_id: int, channel_id: int | None, updated_by: int | None = None
) -> GuildConfig:
    """Point a guild's announcements at *channel_id*; ``None`` turns them off."""
    with Session(engine) as session:
        cfg = session.get(GuildConfig, guild_id)
        if cfg is None:
            cfg = GuildConfig(guild_id=guild_id)
            session.add(cfg)
        cfg.bump_channel_id = channel_id
        cfg.active = channel_id is not None
        cfg.updated_by = updated_by
        session.commit()
        session.refresh(cfg)
        session.expunge(cfg)
        logger.info("Guild %d bump channel → %s", guild_id, channel_id)
        return cfg


def list_announce_channels(engine: Engine) -> list[int]:
    with Session(engine) as session:
        return list(
            session.scalars(
                select(GuildConfig.bump_channel_id).where(
                    GuildConfig.active.is_(True),
                    GuildConfig.bump_channel_id.is_not(None),
                )
            ).all()
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
async def announce_bump(
    bot: BumpboardBot,
    listing_id: str,
    bump_type: BumpType | str,
    *,
    throttle: AnnouncementThrottle | None = None,
) -> int:
    """Broadcast a bump to every opted-in guild.  Returns channels reached."""
    throttle = throttle or _throttle
    listing = await run_db(get_listing, bot.engine, listing_id)
    if listing is None:
        logger.warning("Bump announcement for unknown listing %s", listing_id)
        return 0

    embed = build_bump_embed(listing, bump_type, site_url=bot.cfg.site_url)
    channel_ids = await run_db(list_announce_channels, bot.engine)

    reached = 0
    for channel_id in channel_ids:
        channel = bot.get_channel(channel_id)
        if channel is None or not isinstance(channel, Messageable):
            logger.debug("Announcement channel %d not visible to the bot", channel_id)
            continue
        await throttle.send(channel, embed)
        reached += 1
    return reached


async def on_listing_bumped(bot: BumpboardBot, payload: dict[str, Any]) -> None:
    """NOTIFY callback for ``listing_bumped`` events."""
    listing_id = payload.get("listing_id")
    if not listing_id:
        logger.warning("listing_bumped event without listing_id: %s", payload)
        return
    await announce_bump(bot, listing_id, payload.get("bump_type", BumpType.MANUAL.value))
