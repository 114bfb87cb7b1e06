"""
tests/test_listing_query.py — Browse filters, sort orders, pagination
=====================================================================
Pure functions, so listings are plain namespaces instead of DB rows.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest

from bumpboard.engine.listing_query import (
    Category,
    ListingFilters,
    SortKey,
    browse,
    filter_listings,
    in_member_bucket,
    matches_search,
    paginate,
    sort_listings,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _listing(name, **kw):
    defaults = dict(
        name=name,
        description="",
        tags=[],
        type="server",
        member_count=0,
        featured=False,
        bump_count=0,
        last_bumped_at=None,
        created_at=NOW,
    )
    defaults.update(kw)
    return SimpleNamespace(**defaults)


@pytest.fixture
def directory():
    return [
        _listing(
            "Pixel Pals", description="Retro gaming hangout", tags=["Gaming", "retro"],
            member_count=50, bump_count=3, created_at=NOW - timedelta(days=3),
            last_bumped_at=NOW - timedelta(hours=30),
        ),
        _listing(
            "anime lounge", tags=["anime"], member_count=500, bump_count=12,
            featured=True, created_at=NOW - timedelta(days=1),
            last_bumped_at=NOW - timedelta(hours=1),
        ),
        _listing(
            "Moderator Bot", type="bot", description="Keeps chat tidy",
            member_count=0, bump_count=25, created_at=NOW - timedelta(days=10),
        ),
        _listing(
            "Big Guild", member_count=5000, bump_count=0, created_at=NOW,
        ),
    ]


def _names(items):
    return [item.name for item in items]


class TestSearch:
    def test_matches_name_case_insensitive(self, directory):
        assert matches_search(directory[1], "ANIME")

    def test_matches_description(self, directory):
        assert matches_search(directory[0], "hangout")

    def test_matches_tag(self, directory):
        assert matches_search(directory[0], "gaming")

    def test_blank_term_matches_everything(self, directory):
        assert all(matches_search(item, "   ") for item in directory)

    def test_no_match(self, directory):
        assert not matches_search(directory[3], "anime")


class TestMemberBuckets:
    @pytest.mark.parametrize(
        ("count", "bucket", "expected"),
        [
            (0, "small", True),
            (100, "small", True),
            (101, "small", False),
            (100, "medium", False),
            (1000, "medium", True),
            (1001, "large", True),
            (None, "small", True),
        ],
    )
    def test_boundaries(self, count, bucket, expected):
        assert in_member_bucket(count, bucket) is expected

    def test_unknown_bucket_rejected(self):
        with pytest.raises(ValueError, match="Unknown member bucket"):
            ListingFilters(member_bucket="huge")


class TestFilters:
    def test_empty_filters_keep_everything(self, directory):
        assert len(filter_listings(directory, ListingFilters(), NOW)) == 4

    def test_type(self, directory):
        assert _names(filter_listings(directory, ListingFilters(type="bot"), NOW)) == [
            "Moderator Bot"
        ]

    def test_featured(self, directory):
        result = filter_listings(directory, ListingFilters(featured=False), NOW)
        assert "anime lounge" not in _names(result)

    def test_popular_category(self, directory):
        result = filter_listings(directory, ListingFilters(category=Category.POPULAR), NOW)
        assert _names(result) == ["anime lounge", "Moderator Bot"]

    def test_recent_category_uses_24h_window(self, directory):
        result = filter_listings(directory, ListingFilters(category=Category.RECENT), NOW)
        assert _names(result) == ["anime lounge"]

    def test_filters_combine(self, directory):
        filters = ListingFilters(search="a", member_bucket="medium")
        assert _names(filter_listings(directory, filters, NOW)) == ["anime lounge"]


class TestSort:
    def test_newest(self, directory):
        assert _names(sort_listings(directory, SortKey.NEWEST)) == [
            "Big Guild", "anime lounge", "Pixel Pals", "Moderator Bot",
        ]

    def test_oldest(self, directory):
        assert _names(sort_listings(directory, "oldest"))[0] == "Moderator Bot"

    def test_most_bumped(self, directory):
        assert _names(sort_listings(directory, SortKey.MOST_BUMPED)) == [
            "Moderator Bot", "anime lounge", "Pixel Pals", "Big Guild",
        ]

    def test_member_count(self, directory):
        assert _names(sort_listings(directory, SortKey.MEMBER_COUNT))[0] == "Big Guild"

    def test_alphabetical_ignores_case(self, directory):
        assert _names(sort_listings(directory, SortKey.ALPHABETICAL)) == [
            "anime lounge", "Big Guild", "Moderator Bot", "Pixel Pals",
        ]

    def test_recently_bumped_puts_unbumped_last(self, directory):
        assert _names(sort_listings(directory, SortKey.RECENTLY_BUMPED)) == [
            "anime lounge", "Pixel Pals", "Big Guild", "Moderator Bot",
        ]

    def test_does_not_mutate_input(self, directory):
        before = list(directory)
        sort_listings(directory, SortKey.ALPHABETICAL)
        assert directory == before

    def test_unknown_key(self, directory):
        with pytest.raises(ValueError):
            sort_listings(directory, "random")


class TestPaginate:
    def test_first_page(self):
        page = paginate(list(range(30)), page=1, page_size=12)
        assert page.items == list(range(12))
        assert page.total == 30
        assert page.total_pages == 3

    def test_last_partial_page(self):
        assert paginate(list(range(30)), page=3, page_size=12).items == list(range(24, 30))

    def test_page_past_end_is_empty(self):
        page = paginate(list(range(5)), page=4, page_size=12)
        assert page.items == []
        assert page.total == 5

    def test_empty_input(self):
        page = paginate([], page=1)
        assert page.total_pages == 0

    @pytest.mark.parametrize(("page", "size"), [(0, 12), (1, 0), (1, 101)])
    def test_invalid_arguments(self, page, size):
        with pytest.raises(ValueError):
            paginate([1, 2, 3], page=page, page_size=size)


def test_browse_pipeline(directory):
    page = browse(
        directory, ListingFilters(type="server"), SortKey.MOST_BUMPED, page=1, page_size=2, now=NOW
    )
    assert _names(page.items) == ["anime lounge", "Pixel Pals"]
    assert page.total == 3
    assert page.total_pages == 2
