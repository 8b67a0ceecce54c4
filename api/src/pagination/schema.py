"""Declarative description of a paginated resource's fields."""

import re
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

from .errors import InvalidFilterError


DATE_ONLY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class FieldKind(str, Enum):
    """How a field is compared, coerced and compiled."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    UUID = "uuid"
    DATE = "date"
    ENUM = "enum"
    RELATION = "relation"


class FieldSpec:
    """A single field of a resource.

    Args:
        kind: Field kind
        column: Database column (defaults to the field name, or the foreign
            key column for relations)
        target: Related resource schema, for relation fields
        target_key: Key on the related resource the foreign key points at
        sortable: Whether the field may appear in ``sort``
        filterable: Whether the field may appear in ``filter[...]``
        nullable: Whether records may hold null for the field
    """

    def __init__(
        self,
        kind: FieldKind = FieldKind.STRING,
        column: Optional[str] = None,
        target: Optional["ResourceSchema"] = None,
        target_key: str = "id",
        sortable: bool = True,
        filterable: bool = True,
        nullable: bool = False
    ):
        if kind == FieldKind.RELATION and target is None:
            raise ValueError("Relation fields require a target schema")
        self.kind = kind
        self.column = column
        self.target = target
        self.target_key = target_key
        self.sortable = sortable and kind != FieldKind.RELATION
        self.filterable = filterable
        self.nullable = nullable

    def __repr__(self) -> str:
        return f"FieldSpec(kind={self.kind.value!r}, column={self.column!r})"


class ResourceSchema:
    """Fields of a resource keyed by their public (query-string) names."""

    def __init__(self, name: str, table: str, fields: Dict[str, FieldSpec], id_field: str = "id"):
        self.name = name
        self.table = table
        self.fields = fields
        self.id_field = id_field

    def __repr__(self) -> str:
        return f"ResourceSchema(name={self.name!r}, table={self.table!r})"

    def get(self, name: str) -> Optional[FieldSpec]:
        return self.fields.get(name)

    def is_relation(self, name: str) -> bool:
        spec = self.fields.get(name)
        return spec is not None and spec.kind == FieldKind.RELATION

    def resolve(self, path: Tuple[str, ...]) -> Optional[Tuple["ResourceSchema", FieldSpec]]:
        """Walk a dotted path through relations.

        Returns:
            The schema owning the final segment and its field spec, or None
            when any segment is unknown or a non-final segment is not a
            relation.
        """
        schema = self
        for index, segment in enumerate(path):
            spec = schema.get(segment)
            if spec is None:
                return None
            if index == len(path) - 1:
                return schema, spec
            if spec.kind != FieldKind.RELATION:
                return None
            schema = spec.target
        return None

    def is_nullable(self, path: Tuple[str, ...]) -> bool:
        """True when ``path`` can read as null, including through a missing relation."""
        resolved = self.resolve(path)
        if resolved is None:
            return True
        return len(path) > 1 or resolved[1].nullable

    def kind_of(self, path: Tuple[str, ...]) -> Optional[FieldKind]:
        resolved = self.resolve(path)
        if resolved is None:
            return None
        return resolved[1].kind

    def coerce(self, path: Tuple[str, ...], raw: Any) -> Any:
        """Coerce a raw value to the Python type of the field at ``path``."""
        kind = self.kind_of(path)
        if kind is None:
            return raw
        if kind == FieldKind.RELATION:
            relation = self.resolve(path)[1]
            return relation.target.coerce((relation.target_key,), raw)
        return coerce_value(kind, raw, ".".join(path))


def parse_datetime(raw: str, field: str = "value") -> datetime:
    """Parse an ISO 8601 date or timestamp as an aware UTC datetime."""
    text = raw.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise InvalidFilterError(f"Invalid date value for '{field}': {raw!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def is_bare_date(raw: Any) -> bool:
    return isinstance(raw, str) and bool(DATE_ONLY_PATTERN.match(raw.strip()))


def start_of_day(raw: str, field: str = "value") -> datetime:
    day = parse_datetime(raw, field).date()
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def end_of_day(raw: str, field: str = "value") -> datetime:
    day = parse_datetime(raw, field).date()
    return datetime.combine(day, time.max, tzinfo=timezone.utc)


def coerce_value(kind: FieldKind, raw: Any, field: str = "value") -> Any:
    """Coerce one raw value (usually a query-string or cursor string)."""
    if raw is None:
        return None
    if isinstance(raw, list):
        return [coerce_value(kind, item, field) for item in raw]

    if kind == FieldKind.DATE:
        if isinstance(raw, datetime):
            return raw if raw.tzinfo else raw.replace(tzinfo=timezone.utc)
        if isinstance(raw, date):
            return datetime.combine(raw, time.min, tzinfo=timezone.utc)
        return parse_datetime(str(raw), field)

    if kind == FieldKind.NUMBER:
        if isinstance(raw, (int, float, Decimal)) and not isinstance(raw, bool):
            return raw
        try:
            text = str(raw).strip()
            if re.fullmatch(r"[+-]?\d+", text):
                return int(text)
            return Decimal(text)
        except InvalidOperation:
            raise InvalidFilterError(f"Invalid number value for '{field}': {raw!r}")

    if kind == FieldKind.BOOLEAN:
        if isinstance(raw, bool):
            return raw
        text = str(raw).strip().lower()
        if text in ("true", "1", "yes"):
            return True
        if text in ("false", "0", "no"):
            return False
        raise InvalidFilterError(f"Invalid boolean value for '{field}': {raw!r}")

    if kind == FieldKind.UUID:
        if isinstance(raw, UUID):
            return raw
        try:
            return UUID(str(raw).strip())
        except ValueError:
            raise InvalidFilterError(f"Invalid UUID value for '{field}': {raw!r}")

    if isinstance(raw, Enum):
        return raw.value
    return raw if isinstance(raw, str) else str(raw)

