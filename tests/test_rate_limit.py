"""
tests/test_rate_limit.py — Per-User Mutation Rate Limiting Tests
=================================================================
Mutation endpoints are limited per signed-in user and answer 429 with a
``Retry-After`` header once the window is full.
"""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from bumpboard.api.rate_limit import RateLimiter, get_rate_limiter
from bumpboard.database.models import RateLimitEvent
from conftest import auth, make_listing, make_profile


# ---------------------------------------------------------------------------
# Unit tests for the RateLimiter core (DB-backed)
# ---------------------------------------------------------------------------
class TestRateLimiter:
    """Sliding-window limiter in isolation."""

    def test_allows_requests_within_limit(self, db_engine):
        limiter = RateLimiter(max_requests=5, window_seconds=60, engine=db_engine)
        for expected_remaining in (4, 3, 2, 1, 0):
            allowed, info = limiter.hit("user1")
            assert allowed
            assert info["remaining"] == expected_remaining

    def test_blocks_after_limit_exceeded(self, db_engine):
        limiter = RateLimiter(max_requests=3, window_seconds=60, engine=db_engine)
        for _ in range(3):
            limiter.hit("user1")

        allowed, info = limiter.hit("user1")
        assert not allowed
        assert info["remaining"] == 0
        assert 0 < info["reset"] <= 61

    def test_refused_hits_are_not_recorded(self, db_engine):
        limiter = RateLimiter(max_requests=2, window_seconds=60, engine=db_engine)
        for _ in range(5):
            limiter.hit("user1")
        with Session(db_engine) as s:
            assert s.scalar(select(func.count()).select_from(RateLimitEvent)) == 2

    def test_separate_users_have_separate_limits(self, db_engine):
        limiter = RateLimiter(max_requests=2, window_seconds=60, engine=db_engine)
        limiter.hit("user1")
        limiter.hit("user1")

        allowed1, _ = limiter.hit("user1")
        allowed2, _ = limiter.hit("user2")
        assert not allowed1
        assert allowed2

    def test_reset_clears_specific_user(self, db_engine):
        limiter = RateLimiter(max_requests=2, window_seconds=60, engine=db_engine)
        limiter.hit("user1")
        limiter.hit("user1")
        limiter.hit("user2")

        limiter.reset("user1")

        allowed1, _ = limiter.hit("user1")
        assert allowed1
        _, info2 = limiter.hit("user2")
        assert info2["remaining"] == 0  # user2 kept its earlier hit

    def test_reset_all(self, db_engine):
        limiter = RateLimiter(max_requests=1, window_seconds=60, engine=db_engine)
        limiter.hit("user1")
        limiter.hit("user2")

        limiter.reset()

        assert limiter.hit("user1")[0]
        assert limiter.hit("user2")[0]


# ---------------------------------------------------------------------------
# Integration tests with FastAPI TestClient
# ---------------------------------------------------------------------------
class TestRateLimitDependency:
    """The dependency end-to-end via TestClient."""

    @pytest.fixture
    def limited_client(self, client, db_engine):
        import bumpboard.api.rate_limit as rl_mod

        rl_mod.configure_rate_limiter(engine=db_engine, max_requests=3, window_seconds=60)
        make_profile(db_engine, "user-1", discord_id=111)
        make_profile(db_engine, "user-2", discord_id=222)
        return client, get_rate_limiter()

    def _fill(self, limiter, user_id="user-1"):
        for _ in range(limiter.max_requests):
            limiter.hit(user_id)

    def test_get_requests_not_rate_limited(self, limited_client):
        test_client, limiter = limited_client
        self._fill(limiter)
        for _ in range(5):
            resp = test_client.get("/api/me/listings", headers=auth("user-1"))
            assert resp.status_code == 200

    def test_returns_429_after_limit(self, limited_client):
        test_client, limiter = limited_client
        self._fill(limiter)

        resp = test_client.post("/api/listings", headers=auth("user-1"), json={"name": "Late"})
        assert resp.status_code == 429
        body = resp.json()
        assert body["detail"]["error"] == "rate_limit_exceeded"
        assert "retry_after" in body["detail"]
        assert "Retry-After" in resp.headers

    def test_bump_endpoint_is_limited(self, limited_client, db_engine):
        test_client, limiter = limited_client
        listing = make_listing(db_engine)
        self._fill(limiter)

        resp = test_client.post(f"/api/listings/{listing.id}/bump", headers=auth("user-1"))
        assert resp.status_code == 429
        assert resp.json()["detail"]["error"] == "rate_limit_exceeded"

    def test_different_users_have_separate_limits(self, limited_client):
        test_client, limiter = limited_client
        self._fill(limiter, "user-1")

        resp1 = test_client.post("/api/listings", headers=auth("user-1"), json={"name": "A"})
        resp2 = test_client.post("/api/listings", headers=auth("user-2"), json={"name": "B"})
        assert resp1.status_code == 429
        assert resp2.status_code == 201

    def test_unauthenticated_mutation_gets_401(self, limited_client):
        test_client, _ = limited_client
        resp = test_client.post("/api/listings", json={"name": "Anon"})
        assert resp.status_code == 401
