"""Authentication middleware for API key processing."""

import logging
from typing import Optional

from fastapi import Request
from fastapi.security import APIKeyHeader
from starlette.middleware.base import BaseHTTPMiddleware

from .api_key import API_KEY_PREFIX, validate_api_key
from ..errors.problem_details import ProblemDetailException, UnauthorizedError


logger = logging.getLogger(__name__)

DEFAULT_SKIP_PATHS = [
    "/health", "/ready", "/live", "/", "/docs", "/redoc", "/openapi.json"
]


def extract_api_key(request: Request, prefix: str = API_KEY_PREFIX) -> Optional[str]:
    """Read the API key from ``X-API-Key`` or an ``Authorization: Bearer ak_...`` header."""
    header_key = request.headers.get("X-API-Key")
    if header_key:
        return header_key.strip()

    authorization = request.headers.get("Authorization", "")
    if authorization.startswith("Bearer "):
        token = authorization[7:].strip()
        if token.startswith(prefix):
            return token
    return None


def get_client_ip(request: Request) -> Optional[str]:
    """Client address, preferring proxy headers over the socket peer."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    for header in ("x-real-ip", "x-client-ip", "cf-connecting-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip()
    return request.client.host if request.client else None


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Middleware enforcing API key authentication.

    This middleware:
    1. Extracts the key from X-API-Key or a Bearer ak_ token
    2. Validates it (status, expiry, IP/domain whitelist)
    3. Injects api_key_id into request state for downstream use
    """

    def __init__(
        self,
        app,
        skip_paths: Optional[list[str]] = None,
        enabled: bool = True,
        prefix: str = API_KEY_PREFIX
    ):
        """Initialize authentication middleware.

        Args:
            app: The FastAPI application
            skip_paths: List of paths to skip authentication for
            enabled: When False every request passes through unauthenticated
            prefix: Prefix identifying API keys in Bearer tokens
        """
        super().__init__(app)
        self.skip_paths = skip_paths or DEFAULT_SKIP_PATHS
        self.enabled = enabled
        self.prefix = prefix

    async def dispatch(self, request: Request, call_next):
        """Process the request through authentication middleware."""
        request.state.auth_enabled = self.enabled
        if not self.enabled or request.url.path in self.skip_paths:
            logger.debug(f"AuthMiddleware: Skipping authentication for {request.url.path}")
            return await call_next(request)

        try:
            api_key = extract_api_key(request, self.prefix)
            if not api_key:
                raise UnauthorizedError("API key is required")

            origin = request.headers.get("origin") or request.headers.get("referer")
            api_key_id = await validate_api_key(api_key, get_client_ip(request), origin)

            request.state.api_key_id = api_key_id
            request.state.authenticated = True
            logger.debug(f"AuthMiddleware: Authenticated request with API key {api_key_id}")

        except ProblemDetailException as e:
            logger.warning(f"AuthMiddleware: Authentication failed for {request.url.path}: {e.detail}")
            return e.to_response(request)

        return await call_next(request)


# API key security scheme for OpenAPI documentation
api_key_scheme = APIKeyHeader(
    name="X-API-Key",
    scheme_name="apiKey",
    description="API key issued through /v1/api-keys",
    auto_error=False
)
