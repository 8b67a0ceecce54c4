"""Map exceptions raised while serving a request to problem+json responses."""

import logging
from typing import Any, Dict, List, Union

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .problem_details import ProblemDetailException, create_problem_response


logger = logging.getLogger(__name__)

STATUS_TITLES = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    422: "Unprocessable Entity",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


def _where(request: Request) -> Dict[str, str]:
    return {"method": request.method, "path": str(request.url.path)}


def _validation_problem(
    request: Request,
    status: int,
    prefix: str,
    raw_errors: List[Dict[str, Any]]
) -> JSONResponse:
    """Render pydantic error entries as a validation problem.

    Each entry is reduced to JSON-safe ``loc``/``msg``/``type`` keys and the
    detail line joins them as ``loc -> parts: message``.
    """
    errors = [
        {
            "loc": [str(part) for part in entry.get("loc", ())],
            "msg": entry.get("msg"),
            "type": entry.get("type"),
        }
        for entry in raw_errors
    ]
    summary = "; ".join(f"{' -> '.join(e['loc'])}: {e['msg']}" for e in errors)
    logger.info(f"{prefix}: {len(errors)} errors", extra={**_where(request), "errors": errors})

    return create_problem_response(
        status=status,
        title="Validation Error",
        detail=f"{prefix}: {summary}",
        request=request,
        validation_errors=errors
    )


async def problem_detail_exception_handler(request: Request, exc: ProblemDetailException) -> JSONResponse:
    """Render domain and pagination errors as they describe themselves."""
    level = logging.ERROR if exc.status >= 500 else logging.INFO
    logger.log(
        level,
        f"{exc.status} {exc.title}: {exc.detail}",
        extra={**_where(request), "error_code": exc.extensions.get("error_code")}
    )
    return exc.to_response(request)


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException]
) -> JSONResponse:
    logger.info(f"{exc.status_code} from router: {exc.detail}", extra=_where(request))

    response = create_problem_response(
        status=exc.status_code,
        title=STATUS_TITLES.get(exc.status_code, "HTTP Error"),
        detail=str(exc.detail) if exc.detail else None,
        request=request
    )
    # WWW-Authenticate and friends
    response.headers.update(getattr(exc, "headers", None) or {})
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Invalid path, query or body input: 422."""
    return _validation_problem(request, 422, "Validation failed", exc.errors())


async def pydantic_validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Model validation outside request parsing: 400."""
    return _validation_problem(request, 400, "Data validation failed", exc.errors())


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled {type(exc).__name__}", extra=_where(request))
    return create_problem_response(
        status=500,
        title="Internal Server Error",
        detail="An unexpected error occurred",
        request=request
    )


_HANDLERS = (
    (ProblemDetailException, problem_detail_exception_handler),
    (HTTPException, http_exception_handler),
    (StarletteHTTPException, http_exception_handler),
    (RequestValidationError, validation_exception_handler),
    (ValidationError, pydantic_validation_exception_handler),
    (Exception, general_exception_handler),
)


def register_exception_handlers(app: FastAPI) -> None:
    for exc_class, handler in _HANDLERS:
        app.add_exception_handler(exc_class, handler)
