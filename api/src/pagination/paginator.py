"""Keyset pagination orchestrator."""

import asyncio
import logging
from typing import Any, Awaitable, List, Optional, Protocol

from .cursor import encode_record_cursor
from .links import generate_links
from .models import Page, PageRequest, PaginationConfig, PaginationMeta, sort_fingerprint
from .predicates import (
    OrderTerm, Predicate, build_filter_predicate, build_keyset_condition,
    build_ordering, combine, effective_sort, reverse_ordering, validate_page_request
)
from .schema import ResourceSchema


logger = logging.getLogger(__name__)


class Repository(Protocol):
    """Collaborator contract: ordered fetch and count over a predicate."""

    async def find(
        self,
        predicate: Predicate,
        ordering: List[OrderTerm],
        limit: int,
        projection: Optional[List[str]] = None
    ) -> List[Any]:
        ...

    async def count(self, predicate: Predicate) -> int:
        ...


async def _gather_or_cancel(*calls: Awaitable[Any]) -> List[Any]:
    """Run the calls concurrently; if one fails, cancel the rest and re-raise."""
    tasks = [asyncio.ensure_future(call) for call in calls]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def paginate(
    repository: Repository,
    request: PageRequest,
    base_url: str,
    projection: Optional[List[str]] = None,
    config: Optional[PaginationConfig] = None,
    schema: Optional[ResourceSchema] = None
) -> Page:
    """Fetch one page of records using keyset pagination.

    Issues three repository calls concurrently: the page fetch (size + 1
    rows), the total count (filter only) and the last-page probe (filter
    only, fully reversed sort). Repository errors propagate unchanged.

    Args:
        repository: Object implementing ``find`` and ``count``
        request: Parsed pagination request
        base_url: URL the navigation links are built on
        projection: Optional field list forwarded to ``find``
        config: Page size limits; defaults to 10 / 50
        schema: Optional resource schema for typed filters and sort checks

    Returns:
        The page envelope with ``data``, ``meta`` and ``links``

    Raises:
        PaginationError: On invalid client input
    """
    config = config or PaginationConfig()
    normalized = validate_page_request(request, config, schema)
    size = normalized.size

    terms = effective_sort(normalized.sort, config.id_field)
    ordering = build_ordering(terms)
    last_page_ordering = reverse_ordering(ordering)

    filter_predicate = build_filter_predicate(normalized.filter, schema)
    predicate = filter_predicate
    scan_ordering = ordering

    cursor = normalized.cursor
    if cursor is not None:
        keyset = build_keyset_condition(cursor, terms, normalized.is_backward, schema, config.id_field)
        predicate = combine(filter_predicate, keyset)
    if normalized.is_backward:
        scan_ordering = last_page_ordering

    logger.debug(f"Paginating: size={size} ordering={scan_ordering} predicate={predicate}")

    records, total_count, tail = await _gather_or_cancel(
        repository.find(predicate, scan_ordering, size + 1, projection=projection),
        repository.count(filter_predicate),
        repository.find(filter_predicate, last_page_ordering, size + 1, projection=projection),
    )
    records = list(records)

    has_more = len(records) > size
    if has_more:
        records = records[:size]
    if normalized.is_backward:
        records.reverse()

    if total_count == 0:
        has_next_page = has_previous_page = False
    elif normalized.is_backward:
        has_next_page, has_previous_page = True, has_more
    else:
        has_next_page, has_previous_page = has_more, cursor is not None

    sort_fields = [term.field for term in normalized.sort]
    fingerprint = sort_fingerprint(normalized.sort)

    def cursor_for(record: Any) -> str:
        return encode_record_cursor(record, sort_fields, config.id_field, sort=fingerprint)

    meta = PaginationMeta(
        has_next_page=has_next_page,
        has_previous_page=has_previous_page,
        start_cursor=cursor_for(records[0]) if records else None,
        end_cursor=cursor_for(records[-1]) if records else None,
        last_cursor=cursor_for(tail[size]) if len(tail) > size else None,
        total_count=total_count
    )

    links = generate_links(base_url, normalized, meta, config)
    logger.debug(f"Paginated {len(records)} of {total_count} records")
    return Page(data=records, meta=meta, links=links)
