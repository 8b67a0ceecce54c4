"""FastAPI dependencies for authentication."""

import logging
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, Request, Security

from .middleware import api_key_scheme
from ..errors.problem_details import UnauthorizedError


logger = logging.getLogger(__name__)


async def get_current_api_key_id(
    request: Request,
    _: Annotated[Optional[str], Security(api_key_scheme)] = None
) -> Optional[UUID]:
    """Get the authenticated API key id from request state.

    The id is injected by the authentication middleware. When the
    middleware runs with authentication disabled there is no key and None
    is returned.

    Raises:
        UnauthorizedError: If authentication is enabled but the request
            carries no authenticated key
    """
    api_key_id = getattr(request.state, "api_key_id", None)
    if api_key_id is None and getattr(request.state, "auth_enabled", True):
        raise UnauthorizedError("Request is not authenticated")
    return api_key_id


CurrentApiKeyId = Annotated[Optional[UUID], Depends(get_current_api_key_id)]
