"""Query-string parser for ``page[...]``, ``sort`` and ``filter[...]`` parameters."""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Union

from .errors import InvalidFilterError, InvalidPageSizeError
from .filters import (
    COMBINATORS, CombinatorFilter, FilterTree, LiteralFilter,
    NestedFilter, OperatorFilter, RelationFilter
)
from .models import PageRequest, SortTerm
from .schema import ResourceSchema


logger = logging.getLogger(__name__)

FILTER_KEY_PATTERN = re.compile(r"^filter((?:\[[^\[\]]*\])+)$")
SEGMENT_PATTERN = re.compile(r"\[([^\[\]]*)\]")

NULL_LITERAL = "null"

RawQuery = Mapping[str, Union[str, List[str]]]


def _group_query(raw: Any) -> Dict[str, List[str]]:
    """Collect every value per key, accepting Starlette QueryParams or a plain mapping."""
    if hasattr(raw, "multi_items"):
        items = raw.multi_items()
    else:
        items = []
        for key, value in raw.items():
            if isinstance(value, (list, tuple)):
                items.extend((key, item) for item in value)
            elif value is not None:
                items.append((key, value))

    grouped: Dict[str, List[str]] = {}
    for key, value in items:
        grouped.setdefault(key, []).append(str(value))
    return grouped


def _last(values: Optional[List[str]]) -> Optional[str]:
    if not values:
        return None
    value = values[-1].strip()
    return value or None


def parse_page_size(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        raise InvalidPageSizeError(f"Page size must be an integer, got {raw!r}")


def parse_sort(values: Optional[List[str]]) -> List[SortTerm]:
    """Parse comma-joined and/or repeated ``sort`` values; ``-`` marks descending."""
    terms: List[SortTerm] = []
    for value in values or []:
        for part in value.split(","):
            part = part.strip()
            if part.startswith("-"):
                field, direction = part[1:].strip(), "desc"
            elif part.startswith("+"):
                field, direction = part[1:].strip(), "asc"
            else:
                field, direction = part, "asc"
            if field:
                terms.append(SortTerm(field=field, direction=direction))
    return terms


def parse_filter_value(values: List[str]) -> Any:
    """Turn raw filter values into a literal: ``null`` → None, commas → list."""
    items: List[Any] = []
    for value in values:
        if value == NULL_LITERAL:
            items.append(None)
        elif "," in value:
            for part in value.split(","):
                part = part.strip()
                if part:
                    items.append(None if part == NULL_LITERAL else part)
        else:
            items.append(value)

    if len(values) == 1 and "," not in values[0]:
        return items[0]
    return items


class _FilterBuilder:
    """Merges ``filter[...]`` keys into a FilterTree."""

    def __init__(self, schema: Optional[ResourceSchema]):
        self.schema = schema
        self.tree: FilterTree = {}
        # Maps combinator node id -> {query index: position in children}
        self._slots: Dict[int, Dict[int, int]] = {}

    def add(self, key: str, values: List[str]) -> None:
        match = FILTER_KEY_PATTERN.match(key)
        if not match:
            raise InvalidFilterError(f"Malformed filter parameter '{key}'")
        segments = SEGMENT_PATTERN.findall(match.group(1))
        self._insert(self.tree, segments, parse_filter_value(values), self.schema, key)

    def _insert(
        self,
        tree: FilterTree,
        segments: List[str],
        value: Any,
        schema: Optional[ResourceSchema],
        key: str
    ) -> None:
        head = segments[0].strip()
        if head in COMBINATORS:
            self._insert_combinator(tree, head, segments[1:], value, schema, key)
            return

        if not head or len(segments) > 2:
            raise InvalidFilterError(f"Unsupported filter parameter '{key}'")

        operator = segments[1].strip() if len(segments) == 2 else None
        if operator == "":
            raise InvalidFilterError(f"Empty filter operator in '{key}'")
        self._insert_path(tree, head.split("."), operator, value, schema, key)

    def _insert_combinator(
        self,
        tree: FilterTree,
        kind: str,
        rest: List[str],
        value: Any,
        schema: Optional[ResourceSchema],
        key: str
    ) -> None:
        node = tree.get(kind)
        if node is None:
            node = tree[kind] = CombinatorFilter(kind=kind)
        if not isinstance(node, CombinatorFilter):
            raise InvalidFilterError(f"Conflicting filter parameter '{key}'")

        if kind == "NOT":
            if not rest:
                raise InvalidFilterError(f"Combinator filter '{key}' requires a field")
            if not node.children:
                node.children.append({})
            self._insert(node.children[0], rest, value, schema, key)
            return

        if len(rest) < 2 or not rest[0].strip().isdigit():
            raise InvalidFilterError(f"Combinator filter '{key}' requires an index and a field")

        slots = self._slots.setdefault(id(node), {})
        index = int(rest[0])
        if index not in slots:
            slots[index] = len(node.children)
            node.children.append({})
        self._insert(node.children[slots[index]], rest[1:], value, schema, key)

    def _insert_path(
        self,
        tree: FilterTree,
        path: List[str],
        operator: Optional[str],
        value: Any,
        schema: Optional[ResourceSchema],
        key: str
    ) -> None:
        name = path[0]
        if not name:
            raise InvalidFilterError(f"Empty field name in '{key}'")
        existing = tree.get(name)

        if len(path) > 1:
            if schema is not None and schema.is_relation(name):
                node_type, child_schema = RelationFilter, schema.get(name).target
            else:
                node_type, child_schema = NestedFilter, None
            if existing is None:
                existing = tree[name] = node_type()
            elif not isinstance(existing, node_type):
                raise InvalidFilterError(f"Conflicting filter parameter '{key}'")
            self._insert_path(existing.children, path[1:], operator, value, child_schema, key)
            return

        if operator is None:
            if existing is None or isinstance(existing, LiteralFilter):
                tree[name] = LiteralFilter(value)
            elif isinstance(existing, OperatorFilter):
                existing.operators["equals"] = value
            else:
                raise InvalidFilterError(f"Conflicting filter parameter '{key}'")
            return

        if existing is None:
            tree[name] = OperatorFilter({operator: value})
        elif isinstance(existing, OperatorFilter):
            existing.operators[operator] = value
        elif isinstance(existing, LiteralFilter):
            tree[name] = OperatorFilter({"equals": existing.value, operator: value})
        else:
            raise InvalidFilterError(f"Conflicting filter parameter '{key}'")


def parse_query_params(raw: RawQuery, schema: Optional[ResourceSchema] = None) -> PageRequest:
    """Parse raw query parameters into a PageRequest.

    Args:
        raw: Query parameters, either a mapping of key to string / list of
            strings or a Starlette ``QueryParams``
        schema: Optional resource schema, used to recognise relation paths

    Returns:
        The parsed (not yet validated) request

    Raises:
        InvalidPageSizeError: If page[size] is not an integer
        InvalidFilterError: If a filter key cannot be parsed
    """
    grouped = _group_query(raw)

    builder = _FilterBuilder(schema)
    for key, values in grouped.items():
        if key.startswith("filter["):
            builder.add(key, values)

    request = PageRequest(
        size=parse_page_size(_last(grouped.get("page[size]"))),
        after=_last(grouped.get("page[after]")),
        before=_last(grouped.get("page[before]")),
        sort=parse_sort(grouped.get("sort")),
        filter=builder.tree
    )
    logger.debug(f"Parsed page request: size={request.size} sort={len(request.sort)} filters={list(request.filter)}")
    return request
