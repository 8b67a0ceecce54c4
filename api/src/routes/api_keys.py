"""API key management endpoints."""

import logging
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request, Response

from ..auth.api_key import issue_api_key
from ..auth.dependencies import CurrentApiKeyId
from ..config import get_settings
from ..db.api_keys import (
    API_KEY_SCHEMA, delete_api_key, get_api_key, list_api_keys, revoke_api_key, update_api_key
)
from ..models.api_keys import ApiKey, ApiKeyCreate, ApiKeyCreated, ApiKeyUpdate
from ..pagination import Page, create_link_header, get_base_url, parse_query_params


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api-keys",
    tags=["API Keys"],
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"}
    }
)


@router.post(
    "",
    response_model=ApiKeyCreated,
    status_code=201,
    summary="Issue an API key",
    description="Create a new API key. The plain key is only returned in this response.",
    responses={
        201: {"description": "API key created successfully"},
        404: {"description": "Creating user not found"},
        409: {"description": "Conflict - Name already in use"}
    }
)
async def create_key(key_data: ApiKeyCreate, api_key_id: CurrentApiKeyId) -> ApiKeyCreated:
    logger.info(f"Issuing API key '{key_data.name}' (requested with api key {api_key_id})")
    return await issue_api_key(key_data, get_settings().api_key_prefix)


@router.get(
    "",
    response_model=Page[ApiKey],
    summary="List API keys",
    description=(
        "List API keys with keyset pagination. Accepts `page[size]`, `page[after]`, "
        "`page[before]`, `sort` and `filter[...]` parameters, including filters on "
        "the creating user such as `filter[created_by.email]=ada`."
    ),
    responses={
        200: {"description": "API keys retrieved successfully"},
        400: {"description": "Bad Request - Invalid cursor, sort or filter"},
        422: {"description": "Unprocessable Entity - Invalid page size"}
    }
)
async def list_key_page(
    request: Request,
    response: Response,
    api_key_id: CurrentApiKeyId,
    page_size: Annotated[Optional[str], Query(alias="page[size]", description="Items per page")] = None,
    page_after: Annotated[Optional[str], Query(alias="page[after]", description="Cursor to continue after")] = None,
    page_before: Annotated[Optional[str], Query(alias="page[before]", description="Cursor to continue before")] = None,
    sort: Annotated[Optional[str], Query(description="Comma-separated fields, '-' for descending")] = None
) -> Page[ApiKey]:
    page_request = parse_query_params(request.query_params, API_KEY_SCHEMA)
    page = await list_api_keys(page_request, get_base_url(request), get_settings().pagination_config())

    link_header = create_link_header(page.links)
    if link_header:
        response.headers["Link"] = link_header
    return page


@router.get(
    "/{key_id}",
    response_model=ApiKey,
    summary="Get an API key",
    responses={404: {"description": "API key not found"}}
)
async def read_key(key_id: UUID, api_key_id: CurrentApiKeyId) -> ApiKey:
    return await get_api_key(key_id)


@router.patch(
    "/{key_id}",
    response_model=ApiKey,
    summary="Update an API key",
    responses={
        400: {"description": "Bad Request - Key is revoked"},
        404: {"description": "API key not found"},
        409: {"description": "Conflict - Name already in use"}
    }
)
async def patch_key(key_id: UUID, key_data: ApiKeyUpdate, api_key_id: CurrentApiKeyId) -> ApiKey:
    logger.info(f"Updating API key {key_id}")
    return await update_api_key(key_id, key_data)


@router.post(
    "/{key_id}/revoke",
    response_model=ApiKey,
    summary="Revoke an API key",
    responses={
        400: {"description": "Bad Request - Key already revoked"},
        404: {"description": "API key not found"}
    }
)
async def revoke_key(key_id: UUID, api_key_id: CurrentApiKeyId) -> ApiKey:
    logger.info(f"Revoking API key {key_id}")
    return await revoke_api_key(key_id)


@router.delete(
    "/{key_id}",
    status_code=204,
    summary="Delete an API key",
    responses={404: {"description": "API key not found"}}
)
async def remove_key(key_id: UUID, api_key_id: CurrentApiKeyId) -> Response:
    logger.info(f"Deleting API key {key_id}")
    await delete_api_key(key_id)
    return Response(status_code=204)
