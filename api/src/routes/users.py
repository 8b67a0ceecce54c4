"""Users API endpoints."""

import logging
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request, Response

from ..auth.dependencies import CurrentApiKeyId
from ..config import get_settings
from ..db.users import USER_SCHEMA, create_user, delete_user, get_user, list_users, update_user
from ..models.users import User, UserCreate, UserUpdate
from ..pagination import Page, create_link_header, get_base_url, parse_query_params


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/users",
    tags=["Users"],
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"}
    }
)


@router.post(
    "",
    response_model=User,
    status_code=201,
    summary="Create a user",
    responses={
        201: {"description": "User created successfully"},
        409: {"description": "Conflict - Email already registered"}
    }
)
async def create_new_user(user_data: UserCreate, api_key_id: CurrentApiKeyId) -> User:
    logger.info(f"Creating user '{user_data.email}' (api key {api_key_id})")
    return await create_user(user_data)


@router.get(
    "",
    response_model=Page[User],
    summary="List users",
    description=(
        "List users with keyset pagination. Accepts `page[size]`, `page[after]`, "
        "`page[before]`, `sort` (e.g. `-created_at,name`) and `filter[...]` parameters, "
        "e.g. `filter[role]=ADMIN` or `filter[created_at][gte]=2024-01-01`."
    ),
    responses={
        200: {"description": "Users retrieved successfully"},
        400: {"description": "Bad Request - Invalid cursor, sort or filter"},
        422: {"description": "Unprocessable Entity - Invalid page size"}
    }
)
async def list_user_page(
    request: Request,
    response: Response,
    api_key_id: CurrentApiKeyId,
    page_size: Annotated[Optional[str], Query(alias="page[size]", description="Items per page")] = None,
    page_after: Annotated[Optional[str], Query(alias="page[after]", description="Cursor to continue after")] = None,
    page_before: Annotated[Optional[str], Query(alias="page[before]", description="Cursor to continue before")] = None,
    sort: Annotated[Optional[str], Query(description="Comma-separated fields, '-' for descending")] = None
) -> Page[User]:
    """List users one page at a time.

    The declared query parameters document the contract; parsing reads the
    raw query string so that ``filter[...]`` keys of any depth are honoured.
    """
    page_request = parse_query_params(request.query_params, USER_SCHEMA)
    page = await list_users(page_request, get_base_url(request), get_settings().pagination_config())

    link_header = create_link_header(page.links)
    if link_header:
        response.headers["Link"] = link_header

    logger.info(f"Listed {len(page.data)} users")
    return page


@router.get(
    "/{user_id}",
    response_model=User,
    summary="Get a user",
    responses={404: {"description": "User not found"}}
)
async def read_user(user_id: UUID, api_key_id: CurrentApiKeyId) -> User:
    return await get_user(user_id)


@router.patch(
    "/{user_id}",
    response_model=User,
    summary="Update a user",
    responses={
        404: {"description": "User not found"},
        409: {"description": "Conflict - Email already registered"}
    }
)
async def patch_user(user_id: UUID, user_data: UserUpdate, api_key_id: CurrentApiKeyId) -> User:
    logger.info(f"Updating user {user_id}")
    return await update_user(user_id, user_data)


@router.delete(
    "/{user_id}",
    status_code=204,
    summary="Delete a user",
    responses={404: {"description": "User not found"}}
)
async def remove_user(user_id: UUID, api_key_id: CurrentApiKeyId) -> Response:
    logger.info(f"Deleting user {user_id}")
    await delete_user(user_id)
    return Response(status_code=204)
