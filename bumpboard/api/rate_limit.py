"""
bumpboard.api.rate_limit — Per-User Mutation Rate Limiting
===========================================================

30 mutations per minute per signed-in user, on top of the bump cooldown.
Sliding window keyed by the JWT ``sub`` claim and stored in
``rate_limit_events`` so limits survive restarts and span API workers.
Returns HTTP 429 with a ``Retry-After`` header when exceeded.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import Engine, delete, select
from sqlalchemy.orm import Session

from bumpboard.api.deps import get_current_user
from bumpboard.database.models import RateLimitEvent
from bumpboard.engine.bump_policy import as_utc

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT = 30
DEFAULT_WINDOW_SECONDS = 60

_MUTATION_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class RateLimiter:
    """DB-backed sliding-window limiter keyed by user id."""

    def __init__(
        self,
        max_requests: int = DEFAULT_RATE_LIMIT,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        *,
        engine: Engine,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.engine = engine

    def hit(self, user_id: str) -> tuple[bool, dict[str, Any]]:
        """Check the window and, if allowed, record this request.

        Returns ``(allowed, info)`` with ``remaining``, ``reset`` (seconds
        until a slot frees up) and ``limit``.
        """
        now = datetime.now(UTC)
        cutoff = now - timedelta(seconds=self.window_seconds)

        with Session(self.engine) as session:
            session.execute(
                delete(RateLimitEvent).where(
                    RateLimitEvent.user_id == user_id,
                    RateLimitEvent.timestamp < cutoff,
                )
            )
            timestamps = session.scalars(
                select(RateLimitEvent.timestamp)
                .where(RateLimitEvent.user_id == user_id)
                .order_by(RateLimitEvent.timestamp.asc())
            ).all()

            if len(timestamps) >= self.max_requests:
                session.commit()
                oldest = as_utc(timestamps[0])
                reset = (oldest + timedelta(seconds=self.window_seconds) - now).total_seconds()
                return False, {
                    "remaining": 0,
                    "reset": max(1, int(reset) + 1),
                    "limit": self.max_requests,
                }

            session.add(RateLimitEvent(user_id=user_id, timestamp=now))
            session.commit()

        return True, {
            "remaining": self.max_requests - len(timestamps) - 1,
            "reset": self.window_seconds,
            "limit": self.max_requests,
        }

    def reset(self, user_id: str | None = None) -> None:
        """Clear rate limit state.  ``None`` clears every user."""
        with Session(self.engine) as session:
            stmt = delete(RateLimitEvent)
            if user_id is not None:
                stmt = stmt.where(RateLimitEvent.user_id == user_id)
            session.execute(stmt)
            session.commit()


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------
_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    if _limiter is None:
        raise RuntimeError("Rate limiter not configured — call configure_rate_limiter() first")
    return _limiter


def configure_rate_limiter(
    *,
    engine: Engine,
    max_requests: int = DEFAULT_RATE_LIMIT,
    window_seconds: int = DEFAULT_WINDOW_SECONDS,
) -> None:
    global _limiter
    _limiter = RateLimiter(max_requests, window_seconds, engine=engine)


# ---------------------------------------------------------------------------
# FastAPI dependency — chains after get_current_user
# ---------------------------------------------------------------------------
async def rate_limited_user(
    request: Request,
    user: dict = Depends(get_current_user),
) -> dict:
    """Authenticate *and* count mutations against the user's window.

    Safe methods pass through uncounted.
    """
    if request.method not in _MUTATION_METHODS:
        return user

    limiter = get_rate_limiter()
    user_id = user["sub"]
    allowed, info = await asyncio.to_thread(limiter.hit, user_id)

    if not allowed:
        logger.warning(
            "Rate limit exceeded for user %s: %d requests in %ds",
            user_id, limiter.max_requests, limiter.window_seconds,
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "rate_limit_exceeded",
                "message": f"Rate limit exceeded: {limiter.max_requests} changes per minute.",
                "retry_after": info["reset"],
            },
            headers={"Retry-After": str(info["reset"])},
        )
    return user
