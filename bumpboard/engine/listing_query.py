"""
bumpboard.engine.listing_query — Filter, Sort & Paginate Listings
==================================================================

Pure list work over already-loaded listing rows.  The SQL side
(``status = active`` and the optional type) happens in
:func:`bumpboard.services.listing_service.list_public_listings`; everything
the browse page layers on top lives here.

Any object with the :class:`~bumpboard.database.models.Listing` attributes
works, which keeps these functions testable without a database.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Generic, TypeVar

from bumpboard.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    MEMBER_BUCKETS,
    POPULAR_BUMP_THRESHOLD,
    RECENT_BUMP_WINDOW,
)
from bumpboard.engine.bump_policy import as_utc

T = TypeVar("T")

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class SortKey(StrEnum):
    NEWEST = "newest"
    OLDEST = "oldest"
    MOST_BUMPED = "most_bumped"
    MEMBER_COUNT = "member_count"
    ALPHABETICAL = "alphabetical"
    RECENTLY_BUMPED = "recently_bumped"


class Category(StrEnum):
    """Browse tabs on the listings page."""
    POPULAR = "popular"
    FEATURED = "featured"
    RECENT = "recent"


@dataclass(frozen=True, slots=True)
class ListingFilters:
    """Browse filters.  ``None`` means "don't filter on this"."""

    search: str | None = None
    type: str | None = None
    member_bucket: str | None = None
    featured: bool | None = None
    category: Category | None = None

    def __post_init__(self) -> None:
        if self.member_bucket is not None and self.member_bucket not in MEMBER_BUCKETS:
            raise ValueError(
                f"Unknown member bucket '{self.member_bucket}'. "
                f"Expected one of: {sorted(MEMBER_BUCKETS)}"
            )


@dataclass(frozen=True, slots=True)
class Page(Generic[T]):
    items: list[T]
    page: int
    page_size: int
    total: int
    total_pages: int


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------
def matches_search(listing: Any, term: str) -> bool:
    """Case-insensitive match on name, description, or any tag."""
    needle = term.strip().lower()
    if not needle:
        return True
    if needle in (listing.name or "").lower():
        return True
    if needle in (listing.description or "").lower():
        return True
    return any(needle in str(tag).lower() for tag in (listing.tags or []))


def in_member_bucket(member_count: int | None, bucket: str) -> bool:
    lower, upper = MEMBER_BUCKETS[bucket]
    count = member_count or 0
    if lower is not None and count <= lower:
        return False
    if upper is not None and count > upper:
        return False
    return True


def in_category(listing: Any, category: Category, now: datetime) -> bool:
    if category is Category.POPULAR:
        return (listing.bump_count or 0) >= POPULAR_BUMP_THRESHOLD
    if category is Category.FEATURED:
        return bool(listing.featured)
    last = as_utc(listing.last_bumped_at)
    return last is not None and as_utc(now) - last <= RECENT_BUMP_WINDOW


def filter_listings(
    listings: Sequence[T],
    filters: ListingFilters,
    now: datetime | None = None,
) -> list[T]:
    now = now or datetime.now(UTC)
    result = []
    for listing in listings:
        if filters.type and listing.type != filters.type:
            continue
        if filters.search and not matches_search(listing, filters.search):
            continue
        if filters.member_bucket and not in_member_bucket(
            listing.member_count, filters.member_bucket
        ):
            continue
        if filters.featured is not None and bool(listing.featured) != filters.featured:
            continue
        if filters.category and not in_category(listing, Category(filters.category), now):
            continue
        result.append(listing)
    return result


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------
def _created(listing: Any) -> datetime:
    return as_utc(listing.created_at) or _EPOCH


def sort_listings(listings: Sequence[T], key: SortKey | str = SortKey.NEWEST) -> list[T]:
    """Return a new list ordered by *key*.  Stable for equal keys."""
    key = SortKey(key)
    items = list(listings)

    if key is SortKey.NEWEST:
        return sorted(items, key=_created, reverse=True)
    if key is SortKey.OLDEST:
        return sorted(items, key=_created)
    if key is SortKey.MOST_BUMPED:
        return sorted(items, key=lambda item: item.bump_count or 0, reverse=True)
    if key is SortKey.MEMBER_COUNT:
        return sorted(items, key=lambda item: item.member_count or 0, reverse=True)
    if key is SortKey.ALPHABETICAL:
        return sorted(items, key=lambda item: (item.name or "").lower())

    # RECENTLY_BUMPED: bumped listings first, newest bump on top, then newest created
    items = sorted(items, key=_created, reverse=True)
    return sorted(
        items,
        key=lambda item: as_utc(item.last_bumped_at) or _EPOCH,
        reverse=True,
    )


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------
def paginate(items: Sequence[T], page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> Page[T]:
    """Slice *items* into 1-based pages.

    A page past the end yields an empty item list with the real totals.
    """
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}")

    total = len(items)
    total_pages = math.ceil(total / page_size) if total else 0
    start = (page - 1) * page_size
    return Page(
        items=list(items[start:start + page_size]),
        page=page,
        page_size=page_size,
        total=total,
        total_pages=total_pages,
    )


def browse(
    listings: Sequence[T],
    filters: ListingFilters,
    sort: SortKey | str = SortKey.NEWEST,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    now: datetime | None = None,
) -> Page[T]:
    """Filter, sort, then paginate — the full browse pipeline."""
    return paginate(sort_listings(filter_listings(listings, filters, now), sort), page, page_size)
