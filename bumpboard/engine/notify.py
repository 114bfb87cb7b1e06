"""
bumpboard.engine.notify — PG LISTEN/NOTIFY Event Bus
=====================================================

The API and the bot run as separate processes.  When the API records a
bump it sends ``NOTIFY bumpboard_events, '<json>'``; the bot's
:class:`EventListener` picks the payload up on a background thread and
schedules the matching async callback on the bot's event loop.

Payloads are JSON objects with a ``type`` key, e.g.::

    {"type": "listing_bumped", "listing_id": "…", "bump_type": "manual"}
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import select as _select
import threading
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from sqlalchemy import text

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

EVENT_NOTIFY_CHANNEL = "bumpboard_events"

EventCallback = Callable[[dict[str, Any]], Awaitable[None]]


def send_event_notify(engine: Engine, payload: dict) -> None:
    """Send a NOTIFY on :data:`EVENT_NOTIFY_CHANNEL` with a JSON payload.

    Raises
    ------
    ValueError
        If *payload* has no ``"type"`` key.
    """
    if "type" not in payload:
        raise ValueError("Event payload must include a 'type' key")
    raw = json.dumps(payload, default=str)
    with engine.connect() as conn:
        conn.execute(
            text("SELECT pg_notify(:channel, :payload)"),
            {"channel": EVENT_NOTIFY_CHANNEL, "payload": raw},
        )
        conn.commit()


class EventListener:
    """Background LISTEN thread that dispatches events to async callbacks.

    Usage::

        listener = EventListener(engine)
        listener.register_callback("listing_bumped", on_bump, loop=bot.loop)
        listener.start()
        ...
        listener.stop()

    Reconnects with exponential backoff + jitter when the connection drops
    and gives up after ``max_reconnect_attempts`` consecutive failures.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        max_reconnect_attempts: int = 10,
        base_backoff: float = 1.0,
        max_backoff: float = 60.0,
    ) -> None:
        self._engine = engine
        self._max_attempts = max_reconnect_attempts
        self._base_backoff = base_backoff
        self._max_backoff = max_backoff

        self._callbacks: dict[str, EventCallback] = {}
        self._loop: asyncio.AbstractEventLoop | None = None

        self._thread: threading.Thread | None = None
        self._shutdown = threading.Event()
        self._healthy = False
        self._failed = False

    # -------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------
    @property
    def healthy(self) -> bool:
        return self._healthy and not self._failed

    @property
    def failed(self) -> bool:
        """True once the listener exhausted its reconnect attempts."""
        return self._failed

    # -------------------------------------------------------------------
    # Callbacks
    # -------------------------------------------------------------------
    def register_callback(
        self,
        event_type: str,
        callback: EventCallback,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Register *callback* for payloads whose ``type`` is *event_type*."""
        self._callbacks[event_type] = callback
        if loop is not None:
            self._loop = loop
        logger.info("Registered event callback for '%s'", event_type)

    def dispatch(self, raw_payload: str) -> None:
        """Parse one NOTIFY payload and schedule its callback on the loop."""
        try:
            data = json.loads(raw_payload)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Invalid event payload (not JSON): %s", raw_payload)
            return

        event_type = data.get("type") if isinstance(data, dict) else None
        if not event_type:
            logger.warning("Event payload missing 'type' key: %s", raw_payload)
            return

        callback = self._callbacks.get(event_type)
        if callback is None:
            logger.debug("No callback registered for event type '%s'", event_type)
            return

        loop = self._loop
        if loop is None or loop.is_closed():
            logger.warning("Cannot dispatch event '%s': no event loop available", event_type)
            return

        asyncio.run_coroutine_threadsafe(callback(data), loop)

    # -------------------------------------------------------------------
    # Thread lifecycle
    # -------------------------------------------------------------------
    def backoff_for(self, attempt: int) -> float:
        """Seconds to wait before reconnect *attempt* (1-based), without jitter."""
        return min(self._base_backoff * (2 ** (attempt - 1)), self._max_backoff)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._shutdown.clear()
        self._thread = threading.Thread(
            target=self._run, daemon=True, name="pg-notify-listener"
        )
        self._thread.start()
        logger.info("PG NOTIFY listener thread started")

    def stop(self) -> None:
        self._shutdown.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=5)
            logger.info("PG NOTIFY listener thread stopped")

    def _run(self) -> None:
        import psycopg2

        # psycopg2 needs the real password; str(url) masks it
        dsn = self._engine.url.render_as_string(hide_password=False)
        dsn = dsn.replace("postgresql+psycopg2://", "postgresql://")
        attempt = 0

        while not self._shutdown.is_set():
            conn = None
            try:
                conn = psycopg2.connect(dsn)
                conn.set_isolation_level(0)  # autocommit
                with conn.cursor() as cur:
                    cur.execute(f"LISTEN {EVENT_NOTIFY_CHANNEL};")
                logger.info("PG LISTEN started on channel '%s'", EVENT_NOTIFY_CHANNEL)
                attempt = 0
                self._healthy = True

                while not self._shutdown.is_set():
                    if _select.select([conn], [], [], 5.0) == ([], [], []):
                        continue
                    conn.poll()
                    while conn.notifies:
                        notify = conn.notifies.pop(0)
                        logger.debug("NOTIFY received: %s", notify.payload)
                        try:
                            self.dispatch(notify.payload or "")
                        except Exception:
                            logger.exception("Error dispatching NOTIFY: %s", notify.payload)

            except Exception:
                self._healthy = False
                attempt += 1
                if attempt >= self._max_attempts:
                    logger.critical(
                        "PG LISTEN exhausted %d retries. Bump announcements disabled.",
                        self._max_attempts,
                    )
                    self._failed = True
                    break

                backoff = self.backoff_for(attempt)
                wait = backoff + random.uniform(0, backoff * 0.5)
                logger.exception(
                    "PG LISTEN connection lost (attempt %d/%d). Reconnecting in %.1fs…",
                    attempt, self._max_attempts, wait,
                )
                if self._shutdown.wait(timeout=wait):
                    break
            finally:
                if conn is not None:
                    try:
                        conn.close()
                    except Exception:
                        logger.debug("Error closing LISTEN connection", exc_info=True)
