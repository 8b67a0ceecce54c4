"""Backend-neutral predicates, orderings and keyset boundary conditions."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .cursor import CursorData, decode_cursor
from .errors import (
    ConflictingCursorError, CursorSortMismatchError, InvalidFilterError,
    InvalidPageSizeError, InvalidSortError
)
from .filters import (
    FILTER_OPERATORS, CombinatorFilter, FilterNode, FilterTree, LiteralFilter,
    NestedFilter, OperatorFilter, RelationFilter
)
from .models import (
    NormalizedPageRequest, PageRequest, PaginationConfig, SortTerm, sort_fingerprint
)
from .schema import (
    FieldKind, ResourceSchema, coerce_value, end_of_day, is_bare_date, start_of_day
)


logger = logging.getLogger(__name__)

Path = Tuple[str, ...]


@dataclass(frozen=True)
class Comparison:
    """``path <operator> value``; operators are the filter operators."""

    path: Path
    operator: str
    value: Any
    insensitive: bool = False


@dataclass(frozen=True)
class IsNull:
    path: Path


@dataclass(frozen=True)
class Related:
    """The to-one relation at ``path`` exists and matches ``predicate``."""

    path: Path
    predicate: "Predicate"


@dataclass(frozen=True)
class And:
    predicates: Tuple["Predicate", ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Or:
    predicates: Tuple["Predicate", ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Not:
    predicate: "Predicate"


Predicate = Any  # Comparison | IsNull | Related | And | Or | Not

TRUE = And(())
FALSE = Or(())


@dataclass(frozen=True)
class OrderTerm:
    path: Path
    direction: str = "asc"

    def reversed(self) -> "OrderTerm":
        return OrderTerm(self.path, "desc" if self.direction == "asc" else "asc")

    def as_nested(self) -> Dict[str, Any]:
        """One mapping level per path segment, e.g. ``{"created_by": {"name": "asc"}}``."""
        nested: Any = self.direction
        for segment in reversed(self.path):
            nested = {segment: nested}
        return nested


def combine(*predicates: Predicate) -> Predicate:
    """AND the predicates together, dropping empty conjunctions."""
    parts: List[Predicate] = []
    for predicate in predicates:
        if predicate is None or predicate == TRUE:
            continue
        if isinstance(predicate, And):
            parts.extend(predicate.predicates)
        else:
            parts.append(predicate)
    if not parts:
        return TRUE
    if len(parts) == 1:
        return parts[0]
    return And(tuple(parts))


# Validation & normalization

def validate_page_request(
    request: PageRequest,
    config: Optional[PaginationConfig] = None,
    schema: Optional[ResourceSchema] = None
) -> NormalizedPageRequest:
    """Validate a parsed request and apply defaults.

    Raises:
        InvalidPageSizeError: If size is outside [1, max_size]
        ConflictingCursorError: If both cursors are supplied
        MalformedCursorError: If a cursor cannot be decoded
        CursorSortMismatchError: If a cursor was produced under another sort
        InvalidSortError: If a sort field is not sortable on ``schema``
    """
    config = config or PaginationConfig()

    size = request.size if request.size is not None else config.default_size
    if size < 1 or size > config.max_size:
        raise InvalidPageSizeError(
            f"Page size must be between 1 and {config.max_size}",
            minimum=1,
            maximum=config.max_size
        )

    if request.after and request.before:
        raise ConflictingCursorError()

    sort = list(request.sort) or [SortTerm(field=config.id_field, direction="asc")]
    if schema is not None:
        for term in sort:
            resolved = schema.resolve(term.path)
            if resolved is None or not resolved[1].sortable:
                raise InvalidSortError(f"Cannot sort by '{term.field}'")

    fingerprint = sort_fingerprint(sort)
    after_cursor = _decode_for_sort(request.after, fingerprint)
    before_cursor = _decode_for_sort(request.before, fingerprint)

    return NormalizedPageRequest(
        size=size,
        sort=sort,
        filter=request.filter,
        after=request.after,
        before=request.before,
        after_cursor=after_cursor,
        before_cursor=before_cursor,
        default_sort=not request.sort
    )


def _decode_for_sort(token: Optional[str], fingerprint: str) -> Optional[CursorData]:
    if not token:
        return None
    cursor = decode_cursor(token)
    if cursor.sort is not None and cursor.sort != fingerprint:
        raise CursorSortMismatchError(
            f"Cursor was created for sort '{cursor.sort}' but the request sorts by '{fingerprint}'"
        )
    return cursor


def effective_sort(sort: List[SortTerm], id_field: str = "id") -> List[SortTerm]:
    """Append the id as the final ascending tie-break unless already sorted on."""
    if any(term.field == id_field for term in sort):
        return list(sort)
    return list(sort) + [SortTerm(field=id_field, direction="asc")]


# Ordering

def build_ordering(sort_terms: List[SortTerm]) -> List[OrderTerm]:
    return [OrderTerm(term.path, term.direction) for term in sort_terms]


def reverse_ordering(ordering: List[OrderTerm]) -> List[OrderTerm]:
    return [term.reversed() for term in ordering]


# Keyset boundary

def _boundary_operator(direction: str, is_before: bool) -> str:
    if (direction == "asc") != is_before:
        return "gt"
    return "lt"


def _past(path: Path, operator: str, value: Any, nullable: bool) -> Optional[Predicate]:
    """Records beyond ``value`` on one term, in scan order.

    Nulls sort last ascending and first descending, as PostgreSQL orders
    them by default, so they trail a ``gt`` scan and lead an ``lt`` scan.
    Returns None when nothing can follow.
    """
    if value is None:
        if operator == "gt":
            return None
        return Not(IsNull(path))
    comparison = Comparison(path, operator, value)
    if nullable and operator == "gt":
        return Or((comparison, IsNull(path)))
    return comparison


def _level(path: Path, value: Any) -> Predicate:
    if value is None:
        return IsNull(path)
    return Comparison(path, "equals", value)


def build_keyset_condition(
    cursor: CursorData,
    sort_terms: List[SortTerm],
    is_before: bool,
    schema: Optional[ResourceSchema] = None,
    id_field: str = "id"
) -> Predicate:
    """Restrict a scan to records strictly after (or before) the cursor.

    ``sort_terms`` should already include the id tie-break (see
    ``effective_sort``). Terms whose value is absent from the cursor are
    skipped. Null cursor values and nullable fields are compared with
    ``IsNull`` instead of a comparison against null.
    """
    def cursor_value(term: SortTerm) -> Any:
        if term.field == id_field and term.field not in cursor.values:
            raw = cursor.typed_id()
        else:
            raw = cursor.value(term.field)
        if schema is not None:
            return schema.coerce(term.path, raw)
        return raw

    def nullable(term: SortTerm) -> bool:
        if term.field == id_field:
            return False
        return schema is None or schema.is_nullable(term.path)

    terms = [
        term for term in sort_terms
        if term.field in cursor.values or term.field == id_field
    ]
    if not terms:
        return TRUE

    disjuncts = []
    for index, term in enumerate(terms):
        operator = _boundary_operator(term.direction, is_before)
        beyond = _past(term.path, operator, cursor_value(term), nullable(term))
        if beyond is None:
            continue
        levels = [_level(previous.path, cursor_value(previous)) for previous in terms[:index]]
        disjuncts.append(And(tuple(levels) + (beyond,)) if levels else beyond)

    if not disjuncts:
        return FALSE
    if len(disjuncts) == 1:
        return disjuncts[0]
    return Or(tuple(disjuncts))


# Filters

def build_filter_predicate(tree: FilterTree, schema: Optional[ResourceSchema] = None) -> Predicate:
    """Translate a parsed filter tree into a predicate.

    Raises:
        InvalidFilterError: On unknown fields (when a schema is given),
            unsupported operators or uncoercible values
    """
    return _build_tree(tree, schema, ())


def _build_tree(tree: FilterTree, schema: Optional[ResourceSchema], prefix: Path) -> Predicate:
    parts = [_build_node(name, node, schema, prefix) for name, node in tree.items()]
    return combine(*parts)


def _build_node(name: str, node: FilterNode, schema: Optional[ResourceSchema], prefix: Path) -> Predicate:
    if isinstance(node, CombinatorFilter):
        children = [_build_tree(child, schema, prefix) for child in node.children]
        if node.kind == "OR":
            return Or(tuple(children))
        if node.kind == "NOT":
            return Not(combine(*children))
        return combine(*children)

    path = prefix + (name,)
    label = ".".join(path)
    spec = None
    if schema is not None:
        spec = schema.get(name)
        if spec is None or not spec.filterable:
            raise InvalidFilterError(f"Cannot filter by '{label}'")

    if isinstance(node, RelationFilter):
        if spec is None or spec.kind != FieldKind.RELATION:
            raise InvalidFilterError(f"'{label}' is not a relation")
        return Related(path, _build_tree(node.children, spec.target, ()))

    if isinstance(node, NestedFilter):
        if spec is not None:
            raise InvalidFilterError(f"Cannot filter by nested path under '{label}'")
        return _build_tree(node.children, None, path)

    kind = spec.kind if spec is not None else None

    if kind == FieldKind.RELATION:
        # A bare value on a relation matches the related entity's key exactly
        if isinstance(node, LiteralFilter):
            if node.value is None:
                return IsNull(path)
            if isinstance(node.value, list) and None in node.value:
                present = [item for item in node.value if item is not None]
                return _or_null(path, present, lambda items: _build_node(name, LiteralFilter(items), schema, prefix))
            node = OperatorFilter({"in" if isinstance(node.value, list) else "equals": node.value})
        key_spec = spec.target.get(spec.target_key)
        key_kind = key_spec.kind if key_spec is not None else None
        return Related(path, _field_condition((spec.target_key,), key_kind, node, label))

    return _field_condition(path, kind, node, label)


def _field_condition(path: Path, kind: Optional[FieldKind], node: FilterNode, label: str) -> Predicate:
    if isinstance(node, LiteralFilter):
        return _literal_condition(path, kind, node.value, label)
    if isinstance(node, OperatorFilter):
        unknown = [op for op in node.operators if op not in FILTER_OPERATORS]
        if unknown:
            raise InvalidFilterError(f"Unsupported filter operator '{unknown[0]}' for '{label}'")
        return combine(*[
            _operator_condition(path, kind, operator, value, label)
            for operator, value in node.operators.items()
        ])
    raise InvalidFilterError(f"Unsupported filter for '{label}'")


def _literal_condition(path: Path, kind: Optional[FieldKind], value: Any, label: str) -> Predicate:
    if value is None:
        return IsNull(path)

    if isinstance(value, list):
        if None in value:
            present = [item for item in value if item is not None]
            return _or_null(path, present, lambda items: _literal_condition(path, kind, items, label))
        if kind == FieldKind.DATE:
            return Or(tuple(_literal_condition(path, kind, item, label) for item in value))
        if kind in (None, FieldKind.STRING) and all(isinstance(item, str) for item in value):
            return Or(tuple(_literal_condition(path, kind, item, label) for item in value))
        return _operator_condition(path, kind, "in", value, label)

    if kind == FieldKind.DATE:
        if is_bare_date(value):
            return _day_range(path, value, label)
        return Comparison(path, "equals", coerce_value(kind, value, label))

    if kind in (None, FieldKind.STRING) and isinstance(value, str):
        return Comparison(path, "contains", value.replace("*", ""), insensitive=True)

    return Comparison(path, "equals", _coerce(kind, value, label))


def _operator_condition(path: Path, kind: Optional[FieldKind], operator: str, value: Any, label: str) -> Predicate:
    if operator == "in":
        items = value if isinstance(value, list) else [value]
        if None in items:
            present = [item for item in items if item is not None]
            return _or_null(path, present, lambda rest: _operator_condition(path, kind, "in", rest, label))
        if kind == FieldKind.DATE:
            return Or(tuple(_literal_condition(path, kind, item, label) for item in items))
        return Comparison(path, "in", [_coerce(kind, item, label) for item in items])

    if value is None:
        if operator == "equals":
            return IsNull(path)
        if operator == "not":
            return Not(IsNull(path))
        raise InvalidFilterError(f"Operator '{operator}' on '{label}' requires a value")

    if isinstance(value, list):
        raise InvalidFilterError(f"Operator '{operator}' on '{label}' takes a single value")

    if kind == FieldKind.DATE:
        if is_bare_date(value):
            if operator in ("gte", "lt"):
                return Comparison(path, operator, start_of_day(value, label))
            if operator in ("lte", "gt"):
                return Comparison(path, operator, end_of_day(value, label))
            if operator == "equals":
                return _day_range(path, value, label)
            if operator == "not":
                return Not(_day_range(path, value, label))
        return Comparison(path, "equals" if operator == "contains" else operator, coerce_value(kind, value, label))

    if kind == FieldKind.ENUM:
        if operator == "contains":
            operator = "equals"
        return Comparison(path, operator, _coerce(kind, value, label))

    if operator == "contains":
        if kind not in (None, FieldKind.STRING):
            raise InvalidFilterError(f"Operator 'contains' is not supported for '{label}'")
        return Comparison(path, "contains", str(value).replace("*", ""), insensitive=True)

    return Comparison(path, operator, _coerce(kind, value, label))


def _or_null(path: Path, present: List[Any], condition) -> Predicate:
    """A list naming ``null`` among its values: their condition, or the field is null."""
    if not present:
        return IsNull(path)
    return Or((condition(present if len(present) > 1 else present[0]), IsNull(path)))


def _day_range(path: Path, value: str, label: str) -> Predicate:
    return And((
        Comparison(path, "gte", start_of_day(value, label)),
        Comparison(path, "lte", end_of_day(value, label)),
    ))


def _coerce(kind: Optional[FieldKind], value: Any, label: str) -> Any:
    if kind is None:
        return value
    return coerce_value(kind, value, label)
