"""Problem Details (RFC 9457) responses for the Scaffold API."""

from typing import Optional, Dict, Any
from pydantic import BaseModel, Field
from fastapi import Request
from fastapi.responses import JSONResponse


PROBLEM_CONTENT_TYPE = "application/problem+json"


class ProblemDetail(BaseModel):
    """Problem Details as defined in RFC 9457."""

    type: str = Field(default="about:blank", description="A URI reference that identifies the problem type")
    title: str = Field(description="A short, human-readable summary of the problem type")
    status: int = Field(description="The HTTP status code")
    detail: Optional[str] = Field(default=None, description="A human-readable explanation specific to this occurrence")
    instance: Optional[str] = Field(default=None, description="A URI reference that identifies the specific occurrence")

    # Extension members such as error_code are kept as extra fields
    model_config = {"extra": "allow"}


def build_problem(
    status: int,
    title: str,
    detail: Optional[str] = None,
    type_uri: str = "about:blank",
    instance: Optional[str] = None,
    request: Optional[Request] = None,
    extensions: Optional[Dict[str, Any]] = None
) -> ProblemDetail:
    """Assemble a ProblemDetail, defaulting ``instance`` to the request path."""
    if instance is None and request is not None:
        instance = str(request.url.path)
    return ProblemDetail(
        type=type_uri,
        title=title,
        status=status,
        detail=detail,
        instance=instance,
        **(extensions or {})
    )


class ProblemDetailException(Exception):
    """Base exception rendered as a Problem Details response.

    Subclasses set ``status``, ``title`` and optionally ``default_detail``;
    keyword arguments not consumed by ``__init__`` become extension members.
    """

    status: int = 500
    title: str = "Internal Server Error"
    default_detail: Optional[str] = None

    def __init__(
        self,
        detail: Optional[str] = None,
        type_uri: str = "about:blank",
        instance: Optional[str] = None,
        **extensions: Any
    ):
        self.detail = detail if detail is not None else self.default_detail
        self.type_uri = type_uri
        self.instance = instance
        self.extensions = extensions
        super().__init__(self.detail or self.title)

    def to_problem_detail(self, request: Optional[Request] = None) -> ProblemDetail:
        return build_problem(
            status=self.status,
            title=self.title,
            detail=self.detail,
            type_uri=self.type_uri,
            instance=self.instance,
            request=request,
            extensions=self.extensions
        )

    def to_response(self, request: Optional[Request] = None) -> JSONResponse:
        """Convert to JSONResponse with Problem Details format."""
        problem = self.to_problem_detail(request)
        return JSONResponse(
            status_code=self.status,
            content=problem.model_dump(mode="json", exclude_none=True),
            headers={"Content-Type": PROBLEM_CONTENT_TYPE}
        )


class BadRequestError(ProblemDetailException):
    status = 400
    title = "Bad Request"


class UnauthorizedError(ProblemDetailException):
    status = 401
    title = "Unauthorized"
    default_detail = "Authentication required"


class ForbiddenError(ProblemDetailException):
    status = 403
    title = "Forbidden"
    default_detail = "Access denied"


class NotFoundError(ProblemDetailException):
    status = 404
    title = "Not Found"
    default_detail = "Resource not found"


class ConflictError(ProblemDetailException):
    status = 409
    title = "Conflict"


class UnprocessableEntityError(ProblemDetailException):
    status = 422
    title = "Unprocessable Entity"


class InternalServerError(ProblemDetailException):
    status = 500
    title = "Internal Server Error"
    default_detail = "Internal server error"


class ServiceUnavailableError(ProblemDetailException):
    status = 503
    title = "Service Unavailable"
    default_detail = "Service temporarily unavailable"


def create_problem_response(
    status: int,
    title: str,
    detail: Optional[str] = None,
    type_uri: str = "about:blank",
    instance: Optional[str] = None,
    request: Optional[Request] = None,
    **extensions: Any
) -> JSONResponse:
    """Create a Problem Details response."""
    problem = build_problem(status, title, detail, type_uri, instance, request, extensions)
    return JSONResponse(
        status_code=status,
        content=problem.model_dump(mode="json", exclude_none=True),
        headers={"Content-Type": PROBLEM_CONTENT_TYPE}
    )
