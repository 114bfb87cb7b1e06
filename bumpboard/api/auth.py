"""
bumpboard.api.auth — Identity + Discord Account Linking
========================================================

Site sign-in issues HS256 JWTs whose ``sub`` is the internal profile id.
Bumping additionally needs a linked Discord account, because cooldowns are
tracked per Discord user.  The link flow is a standard OAuth2
``identify`` round-trip with a one-time ``state`` that remembers which
profile started it.
"""

from __future__ import annotations

import logging
import os
import secrets
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from sqlalchemy import delete

from bumpboard.api.deps import get_current_user, get_engine
from bumpboard.api.rate_limit import rate_limited_user
from bumpboard.database.engine import get_session, run_db
from bumpboard.database.models import OAuthState, Profile
from bumpboard.services.profile_service import (
    DiscordIdentityInUse,
    get_or_create_profile,
    link_discord_identity,
    unlink_discord_identity,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])

DISCORD_API = "https://discord.com/api/v10"
OAUTH_STATE_TTL_SECONDS = 600


def _oauth_env() -> tuple[str, str, str, str]:
    """Return required OAuth env vars or raise a clear 500."""
    names = ("DISCORD_CLIENT_ID", "DISCORD_CLIENT_SECRET", "DISCORD_REDIRECT_URI", "FRONTEND_URL")
    values = [os.getenv(name, "").strip() for name in names]
    missing = [name for name, value in zip(names, values) if not value]
    if missing:
        raise HTTPException(
            status_code=500,
            detail="Discord OAuth is not configured: missing " + ", ".join(missing),
        )
    client_id, client_secret, redirect_uri, frontend_url = values
    return client_id, client_secret, redirect_uri, frontend_url.rstrip("/")


def profile_payload(profile: Profile) -> dict:
    return {
        "id": profile.id,
        "username": profile.username,
        "discord_id": str(profile.discord_id) if profile.discord_id else None,
        "discord_username": profile.discord_username,
        "subscription_tier": profile.subscription_tier,
        "subscription_expires_at": profile.subscription_expires_at,
    }


# ---------------------------------------------------------------------------
# OAuth state (sync — run via run_db)
# ---------------------------------------------------------------------------
def _store_oauth_state(engine, state: str, profile_id: str) -> None:
    """Persist a state token for *profile_id* and prune stale entries."""
    cutoff = datetime.now(UTC) - timedelta(seconds=OAUTH_STATE_TTL_SECONDS)
    with get_session(engine) as session:
        session.execute(delete(OAuthState).where(OAuthState.created_at < cutoff))
        session.add(OAuthState(state=state, profile_id=profile_id, created_at=datetime.now(UTC)))


def _consume_oauth_state(engine, state: str) -> str | None:
    """Delete a state token and return its profile id, or None if unknown/expired."""
    cutoff = datetime.now(UTC) - timedelta(seconds=OAUTH_STATE_TTL_SECONDS)
    with get_session(engine) as session:
        session.execute(delete(OAuthState).where(OAuthState.created_at < cutoff))
        row = session.get(OAuthState, state)
        if row is None:
            return None
        profile_id = row.profile_id
        session.delete(row)
        return profile_id


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.get("/me")
async def me(user: dict = Depends(get_current_user), engine=Depends(get_engine)):
    """Return (and lazily create) the caller's profile."""
    profile = await run_db(get_or_create_profile, engine, user["sub"], user.get("username"))
    return profile_payload(profile)


@router.get("/discord/link")
async def discord_link(user: dict = Depends(get_current_user), engine=Depends(get_engine)):
    """Redirect to Discord's consent screen to link the caller's account."""
    client_id, _, redirect_uri, _ = _oauth_env()
    await run_db(get_or_create_profile, engine, user["sub"], user.get("username"))

    state = secrets.token_urlsafe(32)
    await run_db(_store_oauth_state, engine, state, user["sub"])

    query = urlencode({
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": "identify",
        "state": state,
    })
    return RedirectResponse(f"https://discord.com/oauth2/authorize?{query}")


@router.get("/discord/callback")
async def discord_callback(code: str, state: str, engine=Depends(get_engine)):
    """Exchange the OAuth code and link the Discord account to the profile."""
    client_id, client_secret, redirect_uri, frontend_url = _oauth_env()

    profile_id = await run_db(_consume_oauth_state, engine, state)
    if profile_id is None:
        raise HTTPException(400, "Invalid or expired OAuth state")

    transport = httpx.AsyncHTTPTransport(retries=1)
    async with httpx.AsyncClient(timeout=10, transport=transport) as client:
        token_resp = await client.post(
            f"{DISCORD_API}/oauth2/token",
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": client_id,
                "client_secret": client_secret,
            },
        )
        if token_resp.status_code != 200:
            raise HTTPException(400, "OAuth token exchange failed")

        access_token = token_resp.json().get("access_token")
        if not access_token:
            raise HTTPException(400, "No access token returned")

        user_resp = await client.get(
            f"{DISCORD_API}/users/@me",
            headers={"Authorization": f"Bearer {access_token}"},
        )

    if user_resp.status_code != 200:
        raise HTTPException(400, "Failed to fetch Discord user")
    discord_user = user_resp.json()

    try:
        await run_db(
            link_discord_identity,
            engine,
            profile_id,
            int(discord_user["id"]),
            discord_user.get("global_name") or discord_user.get("username"),
        )
    except DiscordIdentityInUse:
        logger.info("Discord %s already linked elsewhere; refused for %s",
                    discord_user["id"], profile_id)
        return RedirectResponse(f"{frontend_url}/dashboard?link_error=in_use")
    except LookupError:
        raise HTTPException(404, "Profile not found")

    return RedirectResponse(f"{frontend_url}/dashboard?discord_linked=1")


@router.delete("/discord/link")
async def discord_unlink(user: dict = Depends(rate_limited_user), engine=Depends(get_engine)):
    try:
        profile = await run_db(unlink_discord_identity, engine, user["sub"])
    except LookupError:
        raise HTTPException(404, "Profile not found")
    return profile_payload(profile)
