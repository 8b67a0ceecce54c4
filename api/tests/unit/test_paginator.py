"""Unit tests for the keyset paginator over an in-memory repository."""

import asyncio
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock
from uuid import uuid4

from src.pagination import (
    FieldKind, FieldSpec, InMemoryRepository, PageRequest, PaginationConfig,
    ResourceSchema, SortTerm, decode_cursor, paginate
)
from src.pagination.errors import (
    ConflictingCursorError, CursorFieldMissingError, CursorSortMismatchError,
    InvalidPageSizeError
)
from src.pagination.params import parse_query_params


BASE_URL = "https://api.example.com/v1/posts"

POST_SCHEMA = ResourceSchema(
    name="posts",
    table="posts",
    fields={
        "id": FieldSpec(FieldKind.NUMBER),
        "title": FieldSpec(FieldKind.STRING),
        "views": FieldSpec(FieldKind.NUMBER),
        "published": FieldSpec(FieldKind.BOOLEAN),
        "created_at": FieldSpec(FieldKind.DATE),
    }
)

RECORD_SCHEMA = ResourceSchema(
    name="records",
    table="records",
    fields={
        "id": FieldSpec(FieldKind.STRING),
        "created_at": FieldSpec(FieldKind.DATE),
    }
)

EXPIRY_SCHEMA = ResourceSchema(
    name="keys",
    table="keys",
    fields={
        "id": FieldSpec(FieldKind.NUMBER),
        "expires_at": FieldSpec(FieldKind.DATE, nullable=True),
    }
)

AUG_1 = datetime(2025, 8, 1, tzinfo=timezone.utc)


def _three_records():
    return [
        {"id": "C", "created_at": AUG_1 + timedelta(days=2)},
        {"id": "A", "created_at": AUG_1},
        {"id": "B", "created_at": AUG_1 + timedelta(days=1)},
    ]


def _expiring_records():
    return [
        {"id": 1, "expires_at": None},
        {"id": 2, "expires_at": AUG_1 + timedelta(days=2)},
        {"id": 3, "expires_at": None},
        {"id": 4, "expires_at": AUG_1},
        {"id": 5, "expires_at": AUG_1 + timedelta(days=1)},
        {"id": 6, "expires_at": None},
    ]


class StallingRepository:
    """Reads wait forever; the count fails once the reads have started."""

    def __init__(self):
        self.cancelled = 0

    async def find(self, predicate, ordering, limit, projection=None):
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled += 1
            raise

    async def count(self, predicate):
        await asyncio.sleep(0)
        raise RuntimeError("count failed")


async def _walk_forward(repository, sort=None, size=10, **kwargs):
    """Follow endCursor until the last page; returns the pages."""
    pages = []
    after = None
    while True:
        request = PageRequest(size=size, sort=sort or [], after=after)
        page = await paginate(repository, request, BASE_URL, **kwargs)
        pages.append(page)
        if not page.meta.has_next_page:
            return pages
        after = page.meta.end_cursor


def _ids(page):
    return [record["id"] for record in page.data]


class TestFirstPage:
    """Test the first page of a result set."""

    @pytest.mark.asyncio
    async def test_default_request(self, post_repository):
        """Test defaults: ten records in id order."""
        page = await paginate(post_repository, PageRequest(), BASE_URL)

        assert _ids(page) == list(range(1, 11))
        assert page.meta.has_next_page is True
        assert page.meta.has_previous_page is False
        assert page.meta.total_count == 25
        assert decode_cursor(page.meta.start_cursor).id == 1
        assert decode_cursor(page.meta.end_cursor).id == 10

    @pytest.mark.asyncio
    async def test_links(self, post_repository):
        """Test first, next and last links are built; prev is absent."""
        page = await paginate(post_repository, PageRequest(), BASE_URL)

        assert page.links.first == BASE_URL
        assert page.links.prev is None
        assert page.links.next.startswith(f"{BASE_URL}?page%5Bafter%5D=")
        assert page.links.last.startswith(f"{BASE_URL}?page%5Bafter%5D=")

    @pytest.mark.asyncio
    async def test_repository_calls(self, post_repository):
        """Test the page, count and last-page probe are all issued."""
        await paginate(post_repository, PageRequest(), BASE_URL)

        assert sorted(post_repository.calls) == ["count", "find", "find"]

    @pytest.mark.asyncio
    async def test_everything_fits(self, post_repository):
        """Test a single page has no next, prev or last."""
        page = await paginate(post_repository, PageRequest(size=50), BASE_URL)

        assert len(page.data) == 25
        assert page.meta.has_next_page is False
        assert page.meta.has_previous_page is False
        assert page.meta.last_cursor is None
        assert page.links.last is None
        assert page.links.first == f"{BASE_URL}?page%5Bsize%5D=50"

    @pytest.mark.asyncio
    async def test_empty_result(self, post_repository):
        """Test an empty result has no cursors and both flags false."""
        request = parse_query_params({"filter[title]": "nothing like this"})
        page = await paginate(post_repository, request, BASE_URL)

        assert page.data == []
        assert page.meta.total_count == 0
        assert page.meta.has_next_page is False
        assert page.meta.has_previous_page is False
        assert page.meta.start_cursor is None
        assert page.meta.end_cursor is None
        assert page.meta.last_cursor is None
        assert page.links.next is None

    @pytest.mark.asyncio
    async def test_empty_result_with_stale_cursor(self, post_repository):
        """Test a cursor past the end of an empty set still reports no pages."""
        first = await paginate(post_repository, PageRequest(), BASE_URL)
        empty = InMemoryRepository([])

        page = await paginate(empty, PageRequest(after=first.meta.end_cursor), BASE_URL)

        assert page.meta.has_next_page is False
        assert page.meta.has_previous_page is False

    @pytest.mark.asyncio
    async def test_single_match_with_page_of_one(self, post_repository):
        """Test page[size]=1 over exactly one match reports no other pages."""
        request = parse_query_params({"filter[id]": "7", "page[size]": "1"}, POST_SCHEMA)

        page = await paginate(post_repository, request, BASE_URL, schema=POST_SCHEMA)

        assert _ids(page) == [7]
        assert page.meta.total_count == 1
        assert page.meta.has_next_page is False
        assert page.meta.has_previous_page is False
        assert page.meta.last_cursor is None


class TestWalking:
    """Test walking a result set in both directions."""

    @pytest.mark.asyncio
    async def test_three_record_example(self):
        """Test two pages over A, B, C sorted by creation time."""
        repository = InMemoryRepository(_three_records())
        sort = [SortTerm(field="created_at")]

        first = await paginate(repository, PageRequest(size=2, sort=sort), BASE_URL, schema=RECORD_SCHEMA)

        assert _ids(first) == ["A", "B"]
        assert first.meta.has_next_page is True
        end = decode_cursor(first.meta.end_cursor)
        assert end.id == "B"
        assert end.values == {"created_at": "2025-08-02T00:00:00Z"}

        second = await paginate(
            repository,
            PageRequest(size=2, sort=sort, after=first.meta.end_cursor),
            BASE_URL,
            schema=RECORD_SCHEMA
        )

        assert _ids(second) == ["C"]
        assert second.meta.has_next_page is False
        assert second.meta.has_previous_page is True

    @pytest.mark.asyncio
    async def test_forward_walk_has_no_gaps_or_overlaps(self, post_repository):
        """Test following next links visits every record exactly once."""
        pages = await _walk_forward(post_repository)

        assert [len(page.data) for page in pages] == [10, 10, 5]
        assert [record_id for page in pages for record_id in _ids(page)] == list(range(1, 26))
        assert all(page.meta.has_previous_page for page in pages[1:])

    @pytest.mark.asyncio
    async def test_backward_walk(self, post_repository):
        """Test walking back from the last page with before cursors."""
        first = await paginate(post_repository, PageRequest(), BASE_URL)

        last = await paginate(post_repository, PageRequest(after=first.meta.last_cursor), BASE_URL)
        assert _ids(last) == list(range(16, 26))
        assert last.meta.has_next_page is False
        assert last.meta.has_previous_page is True

        middle = await paginate(post_repository, PageRequest(before=last.meta.start_cursor), BASE_URL)
        assert _ids(middle) == list(range(6, 16))
        assert middle.meta.has_next_page is True
        assert middle.meta.has_previous_page is True

        head = await paginate(post_repository, PageRequest(before=middle.meta.start_cursor), BASE_URL)
        assert _ids(head) == list(range(1, 6))
        assert head.meta.has_next_page is True
        assert head.meta.has_previous_page is False
        assert head.links.prev is None

    @pytest.mark.asyncio
    async def test_next_then_prev_returns_same_page(self, post_repository):
        """Test prev from the second page yields the first page."""
        first = await paginate(post_repository, PageRequest(size=7), BASE_URL)
        second = await paginate(post_repository, PageRequest(size=7, after=first.meta.end_cursor), BASE_URL)
        back = await paginate(post_repository, PageRequest(size=7, before=second.meta.start_cursor), BASE_URL)

        assert _ids(back) == _ids(first)

    @pytest.mark.asyncio
    async def test_tie_break_on_duplicate_values(self, posts, post_repository):
        """Test sorting on a non-unique field still pages without gaps."""
        sort = [SortTerm(field="views", direction="desc")]
        expected = [post["id"] for post in sorted(posts, key=lambda post: (-post["views"], post["id"]))]

        pages = await _walk_forward(post_repository, sort=sort, size=4)

        assert [record_id for page in pages for record_id in _ids(page)] == expected

    @pytest.mark.asyncio
    async def test_tie_break_backward(self, posts, post_repository):
        """Test walking backwards under a descending non-unique sort."""
        sort = [SortTerm(field="views", direction="desc")]
        expected = [post["id"] for post in sorted(posts, key=lambda post: (-post["views"], post["id"]))]

        first = await paginate(post_repository, PageRequest(size=4, sort=sort), BASE_URL)
        page = await paginate(post_repository, PageRequest(size=4, sort=sort, after=first.meta.last_cursor), BASE_URL)
        collected = _ids(page)
        while page.meta.has_previous_page:
            page = await paginate(post_repository, PageRequest(size=4, sort=sort, before=page.meta.start_cursor), BASE_URL)
            collected = _ids(page) + collected

        assert collected == expected

    @pytest.mark.asyncio
    async def test_last_cursor_yields_final_page(self, posts, post_repository):
        """Test page[after]=lastCursor returns the final size records."""
        sort = [SortTerm(field="title"), SortTerm(field="views", direction="desc")]
        expected = [post["id"] for post in sorted(posts, key=lambda post: (post["title"], -post["views"], post["id"]))]

        first = await paginate(post_repository, PageRequest(size=6, sort=sort), BASE_URL)
        last = await paginate(post_repository, PageRequest(size=6, sort=sort, after=first.meta.last_cursor), BASE_URL)

        assert _ids(last) == expected[-6:]
        assert last.meta.has_next_page is False

    @pytest.mark.asyncio
    async def test_three_record_example_without_schema(self):
        """Test the A, B, C walk when the cursor alone carries the value types."""
        repository = InMemoryRepository(_three_records())
        sort = [SortTerm(field="created_at")]

        first = await paginate(repository, PageRequest(size=2, sort=sort), BASE_URL)
        second = await paginate(repository, PageRequest(size=2, sort=sort, after=first.meta.end_cursor), BASE_URL)
        back = await paginate(repository, PageRequest(size=2, sort=sort, before=second.meta.start_cursor), BASE_URL)

        assert _ids(first) == ["A", "B"]
        assert _ids(second) == ["C"]
        assert second.meta.has_next_page is False
        assert second.meta.has_previous_page is True
        assert _ids(back) == ["A", "B"]

    @pytest.mark.asyncio
    async def test_uuid_ids_without_schema(self):
        """Test the default id sort over UUID ids visits every record."""
        records = [{"id": uuid4(), "name": f"user {n}"} for n in range(7)]

        pages = await _walk_forward(InMemoryRepository(records), size=3)

        visited = [record["id"] for page in pages for record in page.data]
        assert visited == sorted(record["id"] for record in records)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("schema", [None, EXPIRY_SCHEMA])
    @pytest.mark.parametrize("direction,expected", [
        ("asc", [4, 5, 2, 1, 3, 6]),
        ("desc", [1, 3, 6, 2, 5, 4]),
    ])
    async def test_nullable_sort_walks_both_ways(self, schema, direction, expected):
        """Test nulls, last ascending and first descending, are neither skipped nor repeated."""
        repository = InMemoryRepository(_expiring_records())
        sort = [SortTerm(field="expires_at", direction=direction)]

        pages = await _walk_forward(repository, sort=sort, size=2, schema=schema)
        assert [record_id for page in pages for record_id in _ids(page)] == expected

        page = await paginate(
            repository, PageRequest(size=2, sort=sort, after=pages[0].meta.last_cursor), BASE_URL, schema=schema
        )
        collected = _ids(page)
        while page.meta.has_previous_page:
            page = await paginate(
                repository, PageRequest(size=2, sort=sort, before=page.meta.start_cursor), BASE_URL, schema=schema
            )
            collected = _ids(page) + collected
        assert collected == expected


class TestFiltering:
    """Test filters combined with pagination."""

    @pytest.mark.asyncio
    async def test_filter_counts_whole_match(self, post_repository):
        """Test totalCount ignores the cursor but honours the filter."""
        request = parse_query_params({"filter[published]": "true", "page[size]": "3"}, POST_SCHEMA)
        page = await paginate(post_repository, request, BASE_URL, schema=POST_SCHEMA)

        assert page.meta.total_count == 12
        assert _ids(page) == [2, 4, 6]

        second = await paginate(
            post_repository,
            PageRequest(size=3, filter=request.filter, after=page.meta.end_cursor),
            BASE_URL,
            schema=POST_SCHEMA
        )
        assert second.meta.total_count == 12
        assert _ids(second) == [8, 10, 12]

    @pytest.mark.asyncio
    async def test_nested_field_filter(self, post_repository):
        """Test filtering on a nested author name."""
        request = parse_query_params({"filter[author.name]": "jane", "page[size]": "5"})
        page = await paginate(post_repository, request, BASE_URL)

        assert page.meta.total_count == 8
        assert _ids(page) == [3, 6, 9, 12, 15]
        assert "filter%5Bauthor.name%5D=jane" in page.links.next

    @pytest.mark.asyncio
    async def test_null_filter(self, post_repository):
        """Test filter[author]=null matches records without an author."""
        page = await paginate(post_repository, parse_query_params({"filter[author]": "null"}), BASE_URL)

        assert _ids(page) == [2, 5, 8, 11, 14, 17, 20, 23]
        assert page.meta.has_next_page is False

    @pytest.mark.asyncio
    async def test_or_filter(self, post_repository):
        """Test OR branches."""
        request = parse_query_params({
            "filter[OR][0][id][lte]": "2",
            "filter[OR][1][id][gte]": "24",
        }, POST_SCHEMA)

        page = await paginate(post_repository, request, BASE_URL, schema=POST_SCHEMA)

        assert _ids(page) == [1, 2, 24, 25]


class TestErrors:
    """Test invalid requests."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", [0, 51])
    async def test_size_out_of_range(self, post_repository, size):
        with pytest.raises(InvalidPageSizeError):
            await paginate(post_repository, PageRequest(size=size), BASE_URL)

    @pytest.mark.asyncio
    async def test_conflicting_cursors(self, post_repository):
        first = await paginate(post_repository, PageRequest(), BASE_URL)
        cursor = first.meta.end_cursor

        with pytest.raises(ConflictingCursorError):
            await paginate(post_repository, PageRequest(after=cursor, before=cursor), BASE_URL)

    @pytest.mark.asyncio
    async def test_cursor_from_other_sort(self, post_repository):
        """Test reusing a cursor after changing the sort."""
        first = await paginate(post_repository, PageRequest(sort=[SortTerm(field="views")]), BASE_URL)

        with pytest.raises(CursorSortMismatchError):
            await paginate(
                post_repository,
                PageRequest(sort=[SortTerm(field="title")], after=first.meta.end_cursor),
                BASE_URL
            )

    @pytest.mark.asyncio
    async def test_projection_without_sort_field(self, post_repository):
        """Test a projection dropping the sort field cannot produce cursors."""
        request = PageRequest(sort=[SortTerm(field="views")])

        with pytest.raises(CursorFieldMissingError):
            await paginate(post_repository, request, BASE_URL, projection=["id", "title"])

    @pytest.mark.asyncio
    async def test_repository_errors_propagate(self):
        """Test repository failures are not swallowed."""
        repository = AsyncMock()
        repository.find.side_effect = RuntimeError("connection lost")
        repository.count.return_value = 0

        with pytest.raises(RuntimeError, match="connection lost"):
            await paginate(repository, PageRequest(), BASE_URL)

    @pytest.mark.asyncio
    async def test_custom_size_limits(self, post_repository):
        """Test a configured maximum."""
        config = PaginationConfig(default_size=5, max_size=5)

        page = await paginate(post_repository, PageRequest(), BASE_URL, config=config)
        assert len(page.data) == 5

        with pytest.raises(InvalidPageSizeError):
            await paginate(post_repository, PageRequest(size=6), BASE_URL, config=config)

    @pytest.mark.asyncio
    async def test_failure_cancels_sibling_calls(self):
        """Test the page and last-page reads are cancelled when the count fails."""
        repository = StallingRepository()

        with pytest.raises(RuntimeError, match="count failed"):
            await paginate(repository, PageRequest(), BASE_URL)

        assert repository.cancelled == 2
