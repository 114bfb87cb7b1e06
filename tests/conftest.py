"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# JWT_SECRET must exist before bumpboard.api.deps is imported; it validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import asyncio  # noqa: E402
from datetime import UTC, datetime  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# SQLite has no JSONB; render it as TEXT (SQLAlchemy's JSON handling still
# serialises the values).  BigInteger → INTEGER so autoincrement works.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from bumpboard.database.models import (  # noqa: E402
    Base,
    Listing,
    ListingStatus,
    ListingType,
    Profile,
    SubscriptionTier,
)
from bumpboard.engine.bump_policy import BumpPolicy  # noqa: E402

_sqlite_compat_registered = False


def _register_sqlite_compat():
    global _sqlite_compat_registered
    if _sqlite_compat_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _sqlite_compat_registered = True


_register_sqlite_compat()

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def run_async(coro):
    """Run a coroutine to completion on a fresh event loop (no pytest-asyncio)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with every Bumpboard table.

    StaticPool shares one connection across threads, which ``asyncio.to_thread``
    (used by the rate limiter and ``run_db``) needs.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def policy() -> BumpPolicy:
    return BumpPolicy()


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------
def make_profile(
    engine: Engine,
    profile_id: str = "user-1",
    *,
    discord_id: int | None = 111,
    tier: SubscriptionTier = SubscriptionTier.FREE,
    expires_at: datetime | None = None,
    username: str = "tester",
) -> Profile:
    with Session(engine) as session:
        profile = Profile(
            id=profile_id,
            username=username,
            discord_id=discord_id,
            discord_username=f"{username}#0" if discord_id else None,
            subscription_tier=tier.value,
            subscription_expires_at=expires_at,
        )
        session.add(profile)
        session.commit()
        session.refresh(profile)
        session.expunge(profile)
        return profile


def make_listing(
    engine: Engine,
    owner_id: str = "user-1",
    *,
    name: str = "Cozy Corner",
    status: ListingStatus = ListingStatus.ACTIVE,
    listing_type: ListingType = ListingType.SERVER,
    discord_id: int | None = 9000,
    **fields,
) -> Listing:
    with Session(engine) as session:
        listing = Listing(
            owner_id=owner_id,
            name=name,
            type=listing_type.value,
            status=status.value,
            discord_id=discord_id,
            tags=fields.pop("tags", []),
            **fields,
        )
        session.add(listing)
        session.commit()
        session.refresh(listing)
        session.expunge(listing)
        return listing


def make_token(sub: str = "user-1", username: str = "tester") -> str:
    import jwt

    from bumpboard.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"sub": sub, "username": username}, JWT_SECRET, algorithm=JWT_ALGORITHM)


def auth(sub: str = "user-1") -> dict:
    return {"Authorization": f"Bearer {make_token(sub)}"}


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------
@pytest.fixture
def sent_notifications() -> list[tuple[str, str]]:
    return []


@pytest.fixture
def client(db_engine, sent_notifications):
    """TestClient wired to the SQLite engine, a fixed config, and a recording notifier.

    Overrides are keyed on the objects the routes captured.  The policy is
    overridden directly so no route ever falls through to ``load_config``.
    """
    from fastapi.testclient import TestClient

    from bumpboard.api import rate_limit
    from bumpboard.api.main import app
    from bumpboard.api.routes import listings as listings_routes
    from bumpboard.config import BumpboardConfig

    cfg = BumpboardConfig(
        site_name="Bumpboard Test",
        site_url="https://bumpboard.test",
        bot_prefix="!",
    )

    def _notifier(listing_id, bump_type):
        sent_notifications.append((listing_id, str(bump_type)))

    app.dependency_overrides[listings_routes.get_engine] = lambda: db_engine
    app.dependency_overrides[listings_routes.get_config] = lambda: cfg
    app.dependency_overrides[listings_routes.get_notifier] = lambda: _notifier
    app.dependency_overrides[listings_routes.get_policy] = lambda: BumpPolicy.from_config(cfg)
    rate_limit.configure_rate_limiter(engine=db_engine)
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
