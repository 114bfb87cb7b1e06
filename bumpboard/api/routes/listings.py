"""
bumpboard.api.routes.listings — Directory browse, listing CRUD, bumping
========================================================================
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from bumpboard.api.deps import (
    get_config,
    get_engine,
    get_notifier,
    get_optional_user,
    get_policy,
)
from bumpboard.api.rate_limit import rate_limited_user
from bumpboard.config import BumpboardConfig
from bumpboard.constants import MAX_PAGE_SIZE
from bumpboard.database.models import BumpType, Listing, ListingStatus, ListingType
from bumpboard.engine.bump_policy import BumpEligibility, BumpPolicy
from bumpboard.engine.listing_query import Category, ListingFilters, SortKey, browse
from bumpboard.errors import (
    AuthenticationRequired,
    BumpError,
    CooldownActive,
    ExternalIdentityRequired,
    ListingNotEligible,
    ListingNotFound,
    NotListingOwner,
    StoreFailure,
)
from bumpboard.services import bump_service, listing_service
from bumpboard.services.profile_service import get_or_create_profile

router = APIRouter(prefix="/listings", tags=["listings"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ListingCreate(BaseModel):
    type: ListingType = ListingType.SERVER
    name: str = Field(min_length=1, max_length=100)
    description: str = ""
    discord_id: int | None = None
    invite_url: str | None = None
    avatar_url: str | None = None
    tags: list[str] = Field(default_factory=list)
    member_count: int = Field(0, ge=0)


class ListingUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = None
    discord_id: int | None = None
    invite_url: str | None = None
    avatar_url: str | None = None
    tags: list[str] | None = None
    member_count: int | None = Field(None, ge=0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
_STATUS_FOR_ERROR: list[tuple[type[BumpError], int]] = [
    (AuthenticationRequired, status.HTTP_401_UNAUTHORIZED),
    (ExternalIdentityRequired, status.HTTP_403_FORBIDDEN),
    (NotListingOwner, status.HTTP_403_FORBIDDEN),
    (ListingNotFound, status.HTTP_404_NOT_FOUND),   # before its parent class
    (ListingNotEligible, status.HTTP_409_CONFLICT),
    (CooldownActive, status.HTTP_429_TOO_MANY_REQUESTS),
    (StoreFailure, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def http_error(exc: BumpError) -> HTTPException:
    """Translate a bump refusal into the HTTP response the frontend expects."""
    code = next(
        (sc for cls, sc in _STATUS_FOR_ERROR if isinstance(exc, cls)),
        status.HTTP_400_BAD_REQUEST,
    )
    detail = {"error": exc.code, "message": exc.message}
    headers = None
    if isinstance(exc, CooldownActive):
        retry_after = exc.eligibility.retry_after_seconds
        detail["remaining"] = exc.eligibility.wait_text
        detail["retry_after"] = retry_after
        headers = {"Retry-After": str(retry_after)}
    return HTTPException(code, detail=detail, headers=headers)


def listing_dict(listing: Listing) -> dict:
    return {
        "id": listing.id,
        "owner_id": listing.owner_id,
        "type": listing.type,
        "name": listing.name,
        "description": listing.description,
        "discord_id": str(listing.discord_id) if listing.discord_id else None,
        "invite_url": listing.invite_url,
        "avatar_url": listing.avatar_url,
        "tags": listing.tags or [],
        "member_count": listing.member_count or 0,
        "featured": bool(listing.featured),
        "status": listing.status,
        "bump_count": listing.bump_count,
        "last_bumped_at": listing.last_bumped_at.isoformat() if listing.last_bumped_at else None,
        "created_at": listing.created_at.isoformat() if listing.created_at else None,
    }


def eligibility_dict(eligibility: BumpEligibility) -> dict:
    return {
        "can_bump": eligibility.allowed,
        "remaining": eligibility.wait_text,
        "remaining_seconds": int(eligibility.remaining.total_seconds()),
        "cooldown_hours": eligibility.cooldown.total_seconds() / 3600,
        "next_bump_at": (
            eligibility.next_bump_at.isoformat() if eligibility.next_bump_at else None
        ),
    }


# ---------------------------------------------------------------------------
# Browse
# ---------------------------------------------------------------------------
@router.get("")
def list_listings(
    search: str | None = None,
    type: ListingType | None = None,
    member_bucket: Literal["small", "medium", "large"] | None = None,
    featured: bool | None = None,
    category: Category | None = None,
    sort: SortKey = SortKey.NEWEST,
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1, le=MAX_PAGE_SIZE),
    engine=Depends(get_engine),
    cfg: BumpboardConfig = Depends(get_config),
):
    """Public directory grid: active listings only."""
    rows = listing_service.list_public_listings(engine, type.value if type else None)
    filters = ListingFilters(
        search=search,
        member_bucket=member_bucket,
        featured=featured,
        category=category,
    )
    result = browse(rows, filters, sort, page, page_size or cfg.listings_page_size)
    return {
        "items": [listing_dict(listing) for listing in result.items],
        "page": result.page,
        "page_size": result.page_size,
        "total": result.total,
        "total_pages": result.total_pages,
    }


@router.get("/{listing_id}")
def get_listing(
    listing_id: str,
    user: dict | None = Depends(get_optional_user),
    engine=Depends(get_engine),
):
    """Listing detail.  Non-active listings are visible to their owner only."""
    listing = listing_service.get_listing(engine, listing_id)
    if listing is None:
        raise HTTPException(404, "Listing not found")
    is_owner = user is not None and user["sub"] == listing.owner_id
    if listing.status != ListingStatus.ACTIVE.value and not is_owner:
        raise HTTPException(404, "Listing not found")
    return listing_dict(listing)


# ---------------------------------------------------------------------------
# Owner CRUD
# ---------------------------------------------------------------------------
@router.post("", status_code=status.HTTP_201_CREATED)
def create_listing(
    body: ListingCreate,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    get_or_create_profile(engine, user["sub"], user.get("username"))
    fields = body.model_dump(exclude={"type", "name"})
    listing = listing_service.create_listing(
        engine, user["sub"], name=body.name, listing_type=body.type, **fields
    )
    return listing_dict(listing)


@router.patch("/{listing_id}")
def update_listing(
    listing_id: str,
    body: ListingUpdate,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(400, "No fields to update")
    try:
        listing = listing_service.update_listing(engine, listing_id, user["sub"], **changes)
    except BumpError as exc:
        raise http_error(exc)
    return listing_dict(listing)


@router.delete("/{listing_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_listing(
    listing_id: str,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    try:
        listing_service.delete_listing(engine, listing_id, user["sub"])
    except BumpError as exc:
        raise http_error(exc)


# ---------------------------------------------------------------------------
# Bumping
# ---------------------------------------------------------------------------
@router.get("/{listing_id}/bump-status")
def bump_status(
    listing_id: str,
    user: dict | None = Depends(get_optional_user),
    engine=Depends(get_engine),
    policy: BumpPolicy = Depends(get_policy),
):
    try:
        eligibility = bump_service.get_bump_status(
            engine,
            listing_id=listing_id,
            user_id=user["sub"] if user else None,
            policy=policy,
        )
    except BumpError as exc:
        raise http_error(exc)
    return eligibility_dict(eligibility)


@router.post("/{listing_id}/bump")
def bump_listing(
    listing_id: str,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
    policy: BumpPolicy = Depends(get_policy),
    notifier=Depends(get_notifier),
):
    try:
        result = bump_service.perform_bump(
            engine,
            listing_id=listing_id,
            user_id=user["sub"],
            policy=policy,
            notifier=notifier,
            bump_type=BumpType.MANUAL,
        )
    except BumpError as exc:
        raise http_error(exc)
    return {
        "listing_id": result.listing_id,
        "bump_count": result.bump_count,
        "bumped_at": result.bumped_at.isoformat(),
        "next_bump_at": result.next_bump_at.isoformat(),
        "cooldown_hours": result.cooldown.total_seconds() / 3600,
    }


@router.get("/{listing_id}/bumps")
def listing_bumps(
    listing_id: str,
    limit: int = Query(20, ge=1, le=100),
    engine=Depends(get_engine),
):
    """Recent bump history for a public listing."""
    listing = listing_service.get_listing(engine, listing_id)
    if listing is None or listing.status != ListingStatus.ACTIVE.value:
        raise HTTPException(404, "Listing not found")
    return [
        {
            "id": b.id,
            "bump_type": b.bump_type,
            "bumped_at": b.bumped_at.isoformat() if b.bumped_at else None,
        }
        for b in listing_service.recent_bumps(engine, listing_id, limit)
    ]
