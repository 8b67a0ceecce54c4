"""Pydantic models for keyset pagination requests and responses."""

from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .cursor import CursorData


T = TypeVar("T")


class PaginationConfig(BaseModel):
    """Page size limits and identity field used by the paginator."""

    default_size: int = Field(default=10, ge=1, description="Page size when page[size] is absent")
    max_size: int = Field(default=50, ge=1, description="Largest accepted page size")
    id_field: str = Field(default="id", description="Unique, totally ordered record identifier")


class SortTerm(BaseModel):
    """One sort key: a dotted field path and a direction."""

    field: str
    direction: Literal["asc", "desc"] = "asc"

    model_config = ConfigDict(frozen=True)

    @property
    def path(self) -> tuple[str, ...]:
        return tuple(self.field.split("."))

    def reversed(self) -> "SortTerm":
        return SortTerm(field=self.field, direction="desc" if self.direction == "asc" else "asc")

    def to_param(self) -> str:
        """Render as it appears in the ``sort`` query parameter."""
        return f"-{self.field}" if self.direction == "desc" else self.field


def sort_fingerprint(terms: List[SortTerm]) -> str:
    """Canonical string identifying a sort spec, embedded in cursors."""
    return ",".join(term.to_param() for term in terms)


class PageRequest(BaseModel):
    """Pagination request as parsed from the query string.

    Cursors are kept verbatim; decoding happens during validation.
    """

    size: Optional[int] = None
    after: Optional[str] = None
    before: Optional[str] = None
    sort: List[SortTerm] = Field(default_factory=list)
    filter: Dict[str, Any] = Field(default_factory=dict)


class NormalizedPageRequest(BaseModel):
    """Validated request: size within bounds, at most one decoded cursor, non-empty sort."""

    size: int
    sort: List[SortTerm]
    filter: Dict[str, Any] = Field(default_factory=dict)
    after: Optional[str] = None
    before: Optional[str] = None
    after_cursor: Optional[CursorData] = None
    before_cursor: Optional[CursorData] = None
    default_sort: bool = False

    @property
    def cursor(self) -> Optional[CursorData]:
        return self.after_cursor or self.before_cursor

    @property
    def is_backward(self) -> bool:
        return self.before_cursor is not None


class PaginationMeta(BaseModel):
    """Pagination metadata returned alongside a page."""

    has_next_page: bool = Field(description="Indicates if there is a next page")
    has_previous_page: bool = Field(description="Indicates if there is a previous page")
    start_cursor: Optional[str] = Field(default=None, description="Cursor of the first record on the page")
    end_cursor: Optional[str] = Field(default=None, description="Cursor of the last record on the page")
    last_cursor: Optional[str] = Field(default=None, description="page[after] cursor that yields the final page")
    total_count: int = Field(description="Number of records matching the filter")

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PaginationLinks(BaseModel):
    """Navigation links, round-trip parseable by the query parser."""

    first: str = Field(description="URL to the first page of results")
    prev: Optional[str] = Field(default=None, description="URL to the previous page of results")
    next: Optional[str] = Field(default=None, description="URL to the next page of results")
    last: Optional[str] = Field(default=None, description="URL to the last page of results")


class Page(BaseModel, Generic[T]):
    """Response envelope: ``data``, ``meta`` and ``links``."""

    data: List[T] = Field(description="Records on this page")
    meta: PaginationMeta
    links: PaginationLinks

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "data": [],
                "meta": {
                    "hasNextPage": True,
                    "hasPreviousPage": False,
                    "startCursor": "eyJpZCI6MSwic29ydCI6ImlkIiwidmFsdWVzIjp7ImlkIjoxfX0",
                    "endCursor": "eyJpZCI6MTAsInNvcnQiOiJpZCIsInZhbHVlcyI6eyJpZCI6MTB9fQ",
                    "totalCount": 100
                },
                "links": {
                    "first": "https://api.example.com/v1/users",
                    "next": "https://api.example.com/v1/users?page%5Bafter%5D=eyJpZCI6MTAsInNvcnQiOiJpZCIsInZhbHVlcyI6eyJpZCI6MTB9fQ"
                }
            }
        }
    )
