"""Client-input errors raised by the pagination engine."""

from typing import Any

from ..errors.problem_details import (
    BadRequestError, ProblemDetailException, UnprocessableEntityError
)


class PaginationError(ProblemDetailException):
    """Base class shared by every pagination error."""

    error_code: str = "PAGINATION_ERROR"


class InvalidPageSizeError(PaginationError, UnprocessableEntityError):
    """Page size outside the configured bounds or not an integer."""

    error_code = "INVALID_PAGE_SIZE"

    def __init__(self, detail: str, **extensions: Any):
        super().__init__(detail, error_code=self.error_code, **extensions)


class ConflictingCursorError(PaginationError, BadRequestError):
    """Both page[after] and page[before] were supplied."""

    error_code = "CONFLICTING_CURSORS"

    def __init__(self, detail: str = "Cannot use both after and before cursors", **extensions: Any):
        super().__init__(detail, error_code=self.error_code, **extensions)


class MalformedCursorError(PaginationError, BadRequestError):
    """Cursor token is not valid base64url or does not decode to a JSON object."""

    error_code = "MALFORMED_CURSOR"

    def __init__(self, detail: str = "Invalid cursor format", **extensions: Any):
        super().__init__(detail, error_code=self.error_code, **extensions)


class CursorSortMismatchError(PaginationError, BadRequestError):
    """Cursor was produced under a different sort than the current request."""

    error_code = "CURSOR_SORT_MISMATCH"

    def __init__(self, detail: str, **extensions: Any):
        super().__init__(detail, error_code=self.error_code, **extensions)


class CursorFieldMissingError(PaginationError, UnprocessableEntityError):
    """A sort field is absent from the record a cursor is built from."""

    error_code = "CURSOR_FIELD_MISSING"

    def __init__(self, field: str, **extensions: Any):
        self.field = field
        super().__init__(
            f'Cursor field "{field}" not found in record',
            error_code=self.error_code,
            field=field,
            **extensions
        )


class InvalidSortError(PaginationError, BadRequestError):
    """Sort references a field the resource does not allow sorting on."""

    error_code = "INVALID_SORT"

    def __init__(self, detail: str, **extensions: Any):
        super().__init__(detail, error_code=self.error_code, **extensions)


class InvalidFilterError(PaginationError, BadRequestError):
    """Filter key, field, operator or value cannot be interpreted."""

    error_code = "INVALID_FILTER"

    def __init__(self, detail: str, **extensions: Any):
        super().__init__(detail, error_code=self.error_code, **extensions)
