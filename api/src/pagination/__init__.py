"""Pagination module for cursor-based (keyset) pagination."""

from .cursor import (
    CursorData,
    decode_cursor,
    encode_cursor,
    encode_record_cursor,
    get_field_value
)
from .errors import (
    ConflictingCursorError,
    CursorFieldMissingError,
    CursorSortMismatchError,
    InvalidFilterError,
    InvalidPageSizeError,
    InvalidSortError,
    MalformedCursorError,
    PaginationError
)
from .links import create_link_header, generate_links, get_base_url
from .memory import InMemoryRepository
from .models import (
    NormalizedPageRequest,
    Page,
    PageRequest,
    PaginationConfig,
    PaginationLinks,
    PaginationMeta,
    SortTerm
)
from .paginator import Repository, paginate
from .params import parse_query_params
from .predicates import (
    build_filter_predicate,
    build_keyset_condition,
    build_ordering,
    validate_page_request
)
from .schema import FieldKind, FieldSpec, ResourceSchema

__all__ = [
    "CursorData",
    "decode_cursor",
    "encode_cursor",
    "encode_record_cursor",
    "get_field_value",
    "ConflictingCursorError",
    "CursorFieldMissingError",
    "CursorSortMismatchError",
    "InvalidFilterError",
    "InvalidPageSizeError",
    "InvalidSortError",
    "MalformedCursorError",
    "PaginationError",
    "create_link_header",
    "generate_links",
    "get_base_url",
    "InMemoryRepository",
    "NormalizedPageRequest",
    "Page",
    "PageRequest",
    "PaginationConfig",
    "PaginationLinks",
    "PaginationMeta",
    "SortTerm",
    "Repository",
    "paginate",
    "parse_query_params",
    "build_filter_predicate",
    "build_keyset_condition",
    "build_ordering",
    "validate_page_request",
    "FieldKind",
    "FieldSpec",
    "ResourceSchema"
]
