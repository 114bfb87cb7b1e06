"""
bumpboard.api.routes.profile — Owner dashboard endpoints
=========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from bumpboard.api.deps import get_current_user, get_engine, get_policy
from bumpboard.api.rate_limit import rate_limited_user
from bumpboard.api.routes.listings import eligibility_dict, listing_dict
from bumpboard.engine.bump_policy import BumpPolicy
from bumpboard.services import auto_bump_service, bump_service, listing_service
from bumpboard.services.profile_service import get_or_create_profile

router = APIRouter(prefix="/me", tags=["profile"])


class AutoBumpUpdate(BaseModel):
    enabled: bool
    interval_hours: int = Field(ge=1, le=168)


@router.get("/listings")
def my_listings(
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
    policy: BumpPolicy = Depends(get_policy),
):
    """Every listing the caller owns, with the caller's bump status for each."""
    profile = get_or_create_profile(engine, user["sub"], user.get("username"))
    listings = listing_service.list_owner_listings(engine, user["sub"])
    statuses = bump_service.get_bump_statuses(
        engine,
        listing_ids=[listing.id for listing in listings],
        user_id=user["sub"],
        policy=policy,
    )
    items = []
    for listing in listings:
        item = listing_dict(listing)
        eligibility = statuses.get(listing.id)
        item["bump_status"] = eligibility_dict(eligibility) if eligibility else None
        items.append(item)
    return {"items": items, "discord_linked": profile.discord_id is not None}


@router.get("/auto-bump")
def get_auto_bump(user: dict = Depends(get_current_user), engine=Depends(get_engine)):
    setting = auto_bump_service.get_auto_bump_settings(engine, user["sub"])
    if setting is None:
        return {"enabled": False, "interval_hours": None, "last_auto_bump_at": None}
    return {
        "enabled": setting.enabled,
        "interval_hours": setting.interval_hours,
        "last_auto_bump_at": (
            setting.last_auto_bump_at.isoformat() if setting.last_auto_bump_at else None
        ),
    }


@router.put("/auto-bump")
def put_auto_bump(
    body: AutoBumpUpdate,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
    policy: BumpPolicy = Depends(get_policy),
):
    get_or_create_profile(engine, user["sub"], user.get("username"))
    try:
        setting = auto_bump_service.update_auto_bump_settings(
            engine,
            user["sub"],
            enabled=body.enabled,
            interval_hours=body.interval_hours,
            policy=policy,
        )
    except auto_bump_service.AutoBumpNotAllowed as exc:
        raise HTTPException(403, str(exc))
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    return {"enabled": setting.enabled, "interval_hours": setting.interval_hours}
