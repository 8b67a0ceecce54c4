"""Opaque cursor encoding for keyset pagination."""

import base64
import binascii
import json
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from pydantic import BaseModel, Field, ValidationError

from .errors import CursorFieldMissingError, MalformedCursorError


BASE64URL_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

# Sentinel for a field that is absent from a record (distinct from None)
MISSING = object()

def _type_tag(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        return "datetime"
    if isinstance(value, date):
        return "date"
    if isinstance(value, UUID):
        return "uuid"
    if isinstance(value, Decimal):
        return "decimal"
    return None


def _restore(tag: Optional[str], value: Any, field: str) -> Any:
    if tag is None or value is None:
        return value
    try:
        if tag == "datetime":
            text = str(value)
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            return datetime.fromisoformat(text)
        if tag == "date":
            return date.fromisoformat(str(value))
        if tag == "uuid":
            return UUID(str(value))
        if tag == "decimal":
            return Decimal(str(value))
    except (ValueError, InvalidOperation):
        raise MalformedCursorError(f"Invalid cursor format: bad {tag} value for '{field}'")
    raise MalformedCursorError(f"Invalid cursor format: unknown type '{tag}' for '{field}'")


class CursorData(BaseModel):
    """Decoded page boundary: sort-field values plus the record's unique id.

    ``values`` and ``id`` hold the JSON form. ``value()`` and ``typed_id()``
    give them back as the datetime, date, UUID or Decimal they were encoded
    from, using the ``types`` and ``id_type`` tags.
    """

    values: Dict[str, Any] = Field(default_factory=dict, description="Sort field values keyed by field path")
    id: Any = Field(description="Unique id for stable ordering")
    sort: Optional[str] = Field(default=None, description="Fingerprint of the sort that produced the cursor")
    types: Dict[str, str] = Field(default_factory=dict, description="Type tags for non-JSON sort values")
    id_type: Optional[str] = Field(default=None, description="Type tag for a non-JSON id")

    def value(self, field: str) -> Any:
        return _restore(self.types.get(field), self.values.get(field), field)

    def typed_id(self) -> Any:
        return _restore(self.id_type, self.id, "id")


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64url_decode(token: str) -> bytes:
    if not BASE64URL_PATTERN.match(token):
        raise ValueError("token contains characters outside the base64url alphabet")
    padding = "=" * (-len(token) % 4)
    return base64.urlsafe_b64decode(token + padding)


def encode_cursor(
    fields: Sequence[Tuple[str, Any]],
    item_id: Any,
    sort: Optional[str] = None
) -> str:
    """Encode pagination cursor.

    Args:
        fields: Ordered (field path, value) pairs for the active sort
        item_id: The record's unique id
        sort: Optional sort fingerprint the cursor is bound to

    Returns:
        Base64url encoded canonical JSON, without padding
    """
    values = dict(fields)
    types = {}
    for path, value in values.items():
        tag = _type_tag(value)
        if tag is not None:
            types[path] = tag

    cursor_data = CursorData(values=values, id=item_id, sort=sort, types=types, id_type=_type_tag(item_id))
    # Sort values may legitimately be null; the other keys are dropped when unset
    content = cursor_data.model_dump(mode="json")
    for key in ("sort", "id_type"):
        if content[key] is None:
            del content[key]
    if not content["types"]:
        del content["types"]
    payload = json.dumps(
        content,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False
    )
    return _b64url_encode(payload.encode("utf-8"))


def decode_cursor(cursor: str) -> CursorData:
    """Decode pagination cursor.

    Args:
        cursor: Base64url encoded cursor string

    Returns:
        Decoded cursor data

    Raises:
        MalformedCursorError: If cursor is invalid or malformed
    """
    if not cursor:
        raise MalformedCursorError("Empty cursor provided")

    try:
        cursor_json = _b64url_decode(cursor.strip().rstrip("=")).decode("utf-8")
        cursor_dict = json.loads(cursor_json)
    except (ValueError, binascii.Error, UnicodeDecodeError) as e:
        raise MalformedCursorError(f"Invalid cursor format: {e}")

    if not isinstance(cursor_dict, dict):
        raise MalformedCursorError("Invalid cursor format: payload is not an object")

    try:
        data = CursorData.model_validate(cursor_dict)
    except ValidationError as e:
        raise MalformedCursorError(f"Invalid cursor format: {e.errors()[0]['msg']}")

    # Bad type tags are rejected at decode time
    for field in data.types:
        data.value(field)
    data.typed_id()
    return data


def get_field_value(record: Any, path: str) -> Any:
    """Read a dotted path from a mapping or attribute-style record.

    Returns ``MISSING`` when any segment is absent. A None intermediate
    value yields None.
    """
    current = record
    for segment in path.split("."):
        if current is None:
            return None
        if isinstance(current, dict):
            if segment not in current:
                return MISSING
            current = current[segment]
        elif hasattr(current, segment):
            current = getattr(current, segment)
        else:
            return MISSING
    return current


def encode_record_cursor(record: Any, sort_fields: List[str], id_field: str = "id", sort: Optional[str] = None) -> str:
    """Encode the cursor for ``record`` under the given sort fields.

    Raises:
        CursorFieldMissingError: If a sort field or the id is absent from the record
    """
    fields = []
    for field in sort_fields:
        value = get_field_value(record, field)
        if value is MISSING:
            raise CursorFieldMissingError(field)
        fields.append((field, value))

    item_id = get_field_value(record, id_field)
    if item_id is MISSING:
        raise CursorFieldMissingError(id_field)

    return encode_cursor(fields, item_id, sort=sort)
