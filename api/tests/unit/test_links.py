"""Unit tests for navigation links and the Link header."""

from starlette.datastructures import Headers, QueryParams
from unittest.mock import MagicMock

from src.pagination.links import (
    build_query_pairs, create_link_header, generate_links, get_base_url, serialize_filter
)
from src.pagination.models import (
    NormalizedPageRequest, PaginationConfig, PaginationLinks, PaginationMeta, SortTerm
)
from src.pagination.params import parse_query_params


BASE_URL = "http://testserver/v1/users"


def _normalized(**kwargs) -> NormalizedPageRequest:
    defaults = {"size": 10, "sort": [SortTerm(field="id")], "default_sort": True}
    defaults.update(kwargs)
    return NormalizedPageRequest(**defaults)


def _meta(**kwargs) -> PaginationMeta:
    defaults = {
        "has_next_page": False,
        "has_previous_page": False,
        "start_cursor": "start",
        "end_cursor": "end",
        "last_cursor": None,
        "total_count": 3,
    }
    defaults.update(kwargs)
    return PaginationMeta(**defaults)


def _mock_request(url: str, headers=None):
    request = MagicMock()
    request.url.scheme, _, rest = url.partition("://")
    request.url.netloc, _, path = rest.partition("/")
    request.url.path = "/" + path
    request.headers = Headers(headers or {})
    return request


class TestFilterSerialization:
    """Test filter trees render back to query parameters."""

    def test_serialized_filter_parses_to_same_tree(self):
        """Test a complex filter survives a trip through the link."""
        query = QueryParams(
            "filter[name]=ada"
            "&filter[created_at][gte]=2025-08-01"
            "&filter[role][in]=USER,ADMIN"
            "&filter[author.name]=Jane"
            "&filter[OR][0][email]=a&filter[OR][1][email]=b"
            "&filter[NOT][status]=REVOKED"
            "&filter[deleted_at]=null"
        )
        tree = parse_query_params(query).filter

        pairs = serialize_filter(tree)

        assert parse_query_params(QueryParams(pairs)).filter == tree
        assert ("filter[author.name]", "Jane") in pairs
        assert ("filter[role][in]", "USER,ADMIN") in pairs
        assert ("filter[deleted_at]", "null") in pairs

    def test_default_size_and_sort_omitted(self):
        """Test defaults are not repeated in links."""
        assert build_query_pairs(_normalized(), PaginationConfig()) == []

    def test_size_and_sort_included(self):
        request = _normalized(
            size=5,
            sort=[SortTerm(field="name"), SortTerm(field="created_at", direction="desc")],
            default_sort=False
        )

        assert build_query_pairs(request, PaginationConfig()) == [
            ("page[size]", "5"),
            ("sort", "name,-created_at"),
        ]


class TestGenerateLinks:
    """Test first/prev/next/last presence."""

    def test_first_always_present(self):
        links = generate_links(BASE_URL, _normalized(), _meta())

        assert links.first == BASE_URL
        assert links.prev is None
        assert links.next is None
        assert links.last is None

    def test_all_links(self):
        """Test every link on a middle page."""
        meta = _meta(has_next_page=True, has_previous_page=True, last_cursor="tail")
        links = generate_links(BASE_URL, _normalized(size=2), meta)

        assert links.first == f"{BASE_URL}?page%5Bsize%5D=2"
        assert links.prev == f"{BASE_URL}?page%5Bsize%5D=2&page%5Bbefore%5D=start"
        assert links.next == f"{BASE_URL}?page%5Bsize%5D=2&page%5Bafter%5D=end"
        assert links.last == f"{BASE_URL}?page%5Bsize%5D=2&page%5Bafter%5D=tail"

    def test_filters_carried(self):
        request = _normalized(filter=parse_query_params({"filter[name]": "ada"}).filter)
        links = generate_links(BASE_URL, request, _meta(has_next_page=True))

        assert links.next == f"{BASE_URL}?filter%5Bname%5D=ada&page%5Bafter%5D=end"


class TestLinkHeader:
    """Test RFC 8288 Link header rendering."""

    def test_link_header(self):
        links = PaginationLinks(first="http://x/a", next="http://x/a?page%5Bafter%5D=c")

        assert create_link_header(links) == (
            '<http://x/a>; rel="first", <http://x/a?page%5Bafter%5D=c>; rel="next"'
        )

    def test_first_only(self):
        assert create_link_header(PaginationLinks(first="http://x/a")) == '<http://x/a>; rel="first"'


class TestBaseUrl:
    """Test base URL resolution behind proxies."""

    def test_direct_request(self):
        request = _mock_request("http://testserver/v1/users", {"host": "testserver"})
        assert get_base_url(request) == "http://testserver/v1/users"

    def test_forwarded_headers(self):
        """Test X-Forwarded-Proto and X-Forwarded-Host take precedence."""
        request = _mock_request("http://internal:8000/v1/users", {
            "host": "internal:8000",
            "x-forwarded-proto": "https",
            "x-forwarded-host": "api.example.com",
        })
        assert get_base_url(request) == "https://api.example.com/v1/users"

    def test_forwarded_ssl(self):
        request = _mock_request("http://internal/v1/users", {"host": "api.example.com", "x-forwarded-ssl": "on"})
        assert get_base_url(request) == "https://api.example.com/v1/users"
