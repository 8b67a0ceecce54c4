"""Navigation links and RFC 8288 Link headers for paginated responses."""

from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional, Tuple
from urllib.parse import urlencode

from fastapi import Request

from .filters import (
    CombinatorFilter, FilterTree, LiteralFilter, NestedFilter, OperatorFilter, RelationFilter
)
from .models import NormalizedPageRequest, PaginationConfig, PaginationLinks, PaginationMeta, sort_fingerprint


QueryPairs = List[Tuple[str, str]]


def _format_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, list):
        return ",".join(_format_value(item) for item in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _filter_key(segments: List[str]) -> str:
    return "filter" + "".join(f"[{segment}]" for segment in segments)


def _serialize_tree(tree: FilterTree, segments: List[str], path: List[str], pairs: QueryPairs) -> None:
    for name, node in tree.items():
        if isinstance(node, CombinatorFilter):
            if node.kind == "NOT":
                for child in node.children:
                    _serialize_tree(child, segments + ["NOT"], [], pairs)
            else:
                for index, child in enumerate(node.children):
                    _serialize_tree(child, segments + [node.kind, str(index)], [], pairs)
        elif isinstance(node, (NestedFilter, RelationFilter)):
            _serialize_tree(node.children, segments, path + [name], pairs)
        elif isinstance(node, OperatorFilter):
            field = ".".join(path + [name])
            for operator, value in node.operators.items():
                pairs.append((_filter_key(segments + [field, operator]), _format_value(value)))
        elif isinstance(node, LiteralFilter):
            pairs.append((_filter_key(segments + [".".join(path + [name])]), _format_value(node.value)))


def serialize_filter(tree: FilterTree) -> QueryPairs:
    """Render a filter tree back into the ``filter[...]`` keys the parser consumes."""
    pairs: QueryPairs = []
    _serialize_tree(tree, [], [], pairs)
    return pairs


def build_query_pairs(request: NormalizedPageRequest, config: PaginationConfig) -> QueryPairs:
    """Canonical query parameters shared by every link of a page."""
    pairs: QueryPairs = []
    if request.size != config.default_size:
        pairs.append(("page[size]", str(request.size)))
    if not request.default_sort:
        pairs.append(("sort", sort_fingerprint(request.sort)))
    pairs.extend(serialize_filter(request.filter))
    return pairs


def _url(base_url: str, pairs: QueryPairs) -> str:
    if not pairs:
        return base_url
    return f"{base_url}?{urlencode(pairs)}"


def generate_links(
    base_url: str,
    request: NormalizedPageRequest,
    meta: PaginationMeta,
    config: Optional[PaginationConfig] = None
) -> PaginationLinks:
    """Build first/prev/next/last links for a page.

    ``prev``, ``next`` and ``last`` are only present when the matching
    flag and cursor are available.
    """
    config = config or PaginationConfig()
    pairs = build_query_pairs(request, config)

    links = PaginationLinks(first=_url(base_url, pairs))
    if meta.has_previous_page and meta.start_cursor:
        links.prev = _url(base_url, pairs + [("page[before]", meta.start_cursor)])
    if meta.has_next_page and meta.end_cursor:
        links.next = _url(base_url, pairs + [("page[after]", meta.end_cursor)])
    if meta.last_cursor:
        links.last = _url(base_url, pairs + [("page[after]", meta.last_cursor)])
    return links


def create_link_header(links: PaginationLinks) -> Optional[str]:
    """Create Link header for pagination as per RFC 8288.

    Args:
        links: Navigation links of the current page

    Returns:
        Link header value or None if no links
    """
    header_links = []
    for rel in ("first", "prev", "next", "last"):
        url = getattr(links, rel)
        if url:
            header_links.append(f'<{url}>; rel="{rel}"')

    return ", ".join(header_links) if header_links else None


def get_base_url(request: Request) -> str:
    """Absolute URL of the request without its query string, honouring proxy headers."""
    headers = request.headers
    protocol = headers.get("x-forwarded-proto")
    if not protocol:
        protocol = "https" if headers.get("x-forwarded-ssl") == "on" else request.url.scheme
    host = headers.get("x-forwarded-host") or headers.get("host") or request.url.netloc
    return f"{protocol}://{host}{request.url.path}"
