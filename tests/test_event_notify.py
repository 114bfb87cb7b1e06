"""
tests/test_event_notify.py — NOTIFY sender and LISTEN dispatcher
=================================================================
The LISTEN thread itself needs PostgreSQL; these tests cover the parts
that do not: payload validation, dispatch routing and backoff.
"""

from __future__ import annotations

import asyncio
import json
import logging
from unittest.mock import MagicMock, patch

import pytest

from bumpboard.engine.notify import EVENT_NOTIFY_CHANNEL, EventListener, send_event_notify


@pytest.fixture
def loop():
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


class TestSendEventNotify:
    def test_requires_type(self):
        with pytest.raises(ValueError, match="'type'"):
            send_event_notify(MagicMock(), {"listing_id": "x"})

    def test_sends_json_on_channel(self):
        engine = MagicMock()
        conn = engine.connect.return_value.__enter__.return_value

        send_event_notify(engine, {"type": "listing_bumped", "listing_id": "abc"})

        stmt, params = conn.execute.call_args.args
        assert "pg_notify" in str(stmt)
        assert params["channel"] == EVENT_NOTIFY_CHANNEL
        assert json.loads(params["payload"]) == {"type": "listing_bumped", "listing_id": "abc"}
        conn.commit.assert_called_once()


class TestDispatch:
    def test_routes_to_registered_callback(self, loop):
        listener = EventListener(MagicMock())
        callback = MagicMock(return_value="coro")
        listener.register_callback("listing_bumped", callback, loop=loop)

        with patch("bumpboard.engine.notify.asyncio.run_coroutine_threadsafe") as schedule:
            listener.dispatch(json.dumps({"type": "listing_bumped", "listing_id": "abc"}))

        callback.assert_called_once_with({"type": "listing_bumped", "listing_id": "abc"})
        schedule.assert_called_once_with("coro", loop)

    def test_unregistered_type_is_ignored(self, loop):
        listener = EventListener(MagicMock())
        callback = MagicMock()
        listener.register_callback("listing_bumped", callback, loop=loop)

        with patch("bumpboard.engine.notify.asyncio.run_coroutine_threadsafe") as schedule:
            listener.dispatch(json.dumps({"type": "something_else"}))

        callback.assert_not_called()
        schedule.assert_not_called()

    @pytest.mark.parametrize("raw", ["not json", json.dumps({"listing_id": "abc"}), "[1, 2]"])
    def test_bad_payloads_are_logged(self, loop, raw, caplog):
        listener = EventListener(MagicMock())
        callback = MagicMock()
        listener.register_callback("listing_bumped", callback, loop=loop)

        with caplog.at_level(logging.WARNING, logger="bumpboard.engine.notify"):
            listener.dispatch(raw)

        callback.assert_not_called()
        assert caplog.records

    def test_no_loop(self, caplog):
        listener = EventListener(MagicMock())
        callback = MagicMock()
        listener.register_callback("listing_bumped", callback)

        with caplog.at_level(logging.WARNING, logger="bumpboard.engine.notify"):
            listener.dispatch(json.dumps({"type": "listing_bumped"}))

        callback.assert_not_called()
        assert "no event loop" in caplog.text


class TestBackoff:
    def test_doubles_until_cap(self):
        listener = EventListener(MagicMock(), base_backoff=1.0, max_backoff=10.0)
        assert [listener.backoff_for(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 8.0, 10.0]

    def test_fresh_listener_is_not_healthy(self):
        listener = EventListener(MagicMock())
        assert not listener.healthy
        assert not listener.failed
