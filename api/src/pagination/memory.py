"""In-memory repository evaluating predicates over dicts or objects."""

import logging
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Iterable, List, Optional, Sequence

from .cursor import MISSING, get_field_value
from .predicates import And, Comparison, IsNull, Not, Or, OrderTerm, Predicate, Related


logger = logging.getLogger(__name__)


def _normalize(value: Any) -> Any:
    """Make record values comparable with coerced filter values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    return value


def _read(record: Any, path: Sequence[str]) -> Any:
    value = get_field_value(record, ".".join(path))
    return None if value is MISSING else _normalize(value)


def _compare(actual: Any, operator: str, expected: Any, insensitive: bool) -> bool:
    expected = [_normalize(item) for item in expected] if isinstance(expected, list) else _normalize(expected)

    if operator == "in":
        return actual is not None and actual in expected
    if operator == "equals":
        if insensitive and isinstance(actual, str) and isinstance(expected, str):
            return actual.lower() == expected.lower()
        return actual == expected
    if operator == "not":
        return actual is not None and actual != expected
    if operator == "contains":
        if actual is None:
            return False
        haystack, needle = str(actual), str(expected)
        if insensitive:
            haystack, needle = haystack.lower(), needle.lower()
        return needle in haystack

    if actual is None or expected is None:
        return False
    try:
        if operator == "gt":
            return actual > expected
        if operator == "gte":
            return actual >= expected
        if operator == "lt":
            return actual < expected
        if operator == "lte":
            return actual <= expected
    except TypeError:
        return False
    raise ValueError(f"Unknown operator: {operator}")


def evaluate(predicate: Predicate, record: Any) -> bool:
    """Evaluate a predicate against one record."""
    if isinstance(predicate, And):
        return all(evaluate(item, record) for item in predicate.predicates)
    if isinstance(predicate, Or):
        return any(evaluate(item, record) for item in predicate.predicates)
    if isinstance(predicate, Not):
        return not evaluate(predicate.predicate, record)
    if isinstance(predicate, IsNull):
        return _read(record, predicate.path) is None
    if isinstance(predicate, Related):
        related = get_field_value(record, ".".join(predicate.path))
        if related is MISSING or related is None:
            return False
        return evaluate(predicate.predicate, related)
    if isinstance(predicate, Comparison):
        return _compare(_read(record, predicate.path), predicate.operator, predicate.value, predicate.insensitive)
    raise TypeError(f"Unsupported predicate: {predicate!r}")


def sort_records(records: Iterable[Any], ordering: List[OrderTerm]) -> List[Any]:
    """Stable multi-key sort; None sorts after values in ascending order."""
    result = list(records)
    for term in reversed(ordering):
        present = [record for record in result if _read(record, term.path) is not None]
        absent = [record for record in result if _read(record, term.path) is None]
        present.sort(key=lambda record: _read(record, term.path), reverse=term.direction == "desc")
        result = present + absent if term.direction == "asc" else absent + present
    return result


def _project(record: Any, projection: Optional[List[str]]) -> Any:
    if not projection or not isinstance(record, dict):
        return record
    return {key: value for key, value in record.items() if key in projection}


class InMemoryRepository:
    """Repository over a fixed list of records.

    Records may be dicts (nested dicts for relations) or attribute-style
    objects such as pydantic models.
    """

    def __init__(self, records: Iterable[Any]):
        self.records = list(records)
        self.calls: List[str] = []

    async def find(
        self,
        predicate: Predicate,
        ordering: List[OrderTerm],
        limit: int,
        projection: Optional[List[str]] = None
    ) -> List[Any]:
        self.calls.append("find")
        matching = [record for record in self.records if evaluate(predicate, record)]
        page = sort_records(matching, ordering)[:limit]
        logger.debug(f"In-memory find matched {len(matching)} records, returning {len(page)}")
        return [_project(record, projection) for record in page]

    async def count(self, predicate: Predicate) -> int:
        self.calls.append("count")
        return sum(1 for record in self.records if evaluate(predicate, record))
