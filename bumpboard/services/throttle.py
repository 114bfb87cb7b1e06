"""
bumpboard.services.throttle — Per-channel bump announcement throttle
=====================================================================

A popular directory can see dozens of bumps a minute.  Each announcement
channel gets at most ``max_per_window`` embeds per ``window`` seconds; the
rest wait in a per-channel FIFO that a background task drains every
``drain_interval`` seconds.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable

import discord
from discord.abc import Messageable

logger = logging.getLogger(__name__)


class AnnouncementThrottle:
    """Sliding-window limiter with an overflow queue per channel."""

    def __init__(
        self,
        max_per_window: int = 3,
        window: float = 60.0,
        drain_interval: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_per_window = max_per_window
        self.window = window
        self.drain_interval = drain_interval
        self._clock = clock
        self._sent: dict[int, deque[float]] = {}
        self._pending: dict[int, deque[tuple[discord.Embed, Messageable]]] = {}
        self._drain_task: asyncio.Task | None = None

    def try_acquire(self, channel_id: int) -> bool:
        """Claim a send slot for *channel_id*.  False means the window is full."""
        now = self._clock()
        sent = self._sent.setdefault(channel_id, deque())
        while sent and sent[0] <= now - self.window:
            sent.popleft()
        if len(sent) >= self.max_per_window:
            return False
        sent.append(now)
        return True

    def pending(self, channel_id: int) -> int:
        return len(self._pending.get(channel_id, ()))

    def enqueue(self, channel_id: int, embed: discord.Embed, channel: Messageable) -> None:
        self._pending.setdefault(channel_id, deque()).append((embed, channel))
        logger.debug("Queued bump announcement for channel %d", channel_id)

    async def send(self, channel: Messageable, embed: discord.Embed) -> bool:
        """Send now if the window allows, otherwise queue.  True when sent."""
        channel_id = getattr(channel, "id", 0)
        if self.pending(channel_id) or not self.try_acquire(channel_id):
            self.enqueue(channel_id, embed, channel)
            return False
        await self._deliver(channel_id, channel, embed)
        return True

    async def drain_once(self) -> int:
        """Deliver queued embeds whose channel window has reopened."""
        delivered = 0
        for channel_id, queue in list(self._pending.items()):
            while queue and self.try_acquire(channel_id):
                embed, channel = queue.popleft()
                await self._deliver(channel_id, channel, embed)
                delivered += 1
            if not queue:
                del self._pending[channel_id]
        return delivered

    async def _deliver(self, channel_id: int, channel: Messageable, embed: discord.Embed) -> None:
        try:
            await channel.send(embed=embed)
        except Exception:
            logger.exception("Failed to send bump announcement to channel %d", channel_id)

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._drain_task is not None:
            return

        async def _drain_loop() -> None:
            while True:
                await asyncio.sleep(self.drain_interval)
                try:
                    await self.drain_once()
                except Exception:
                    logger.exception("Announcement drain error")

        self._drain_task = loop.create_task(_drain_loop(), name="announce-drain")

    def stop(self) -> None:
        if self._drain_task:
            self._drain_task.cancel()
            self._drain_task = None
