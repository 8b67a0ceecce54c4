"""Database operations for API keys."""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

import asyncpg

from ..models.api_keys import ApiKey, ApiKeyCreate, ApiKeyRow, ApiKeyStatus, ApiKeyUpdate
from ..pagination import FieldKind, FieldSpec, Page, PageRequest, PaginationConfig, ResourceSchema, paginate
from ..pagination.predicates import Comparison
from ..pagination.sql import AsyncpgRepository
from ..errors.problem_details import (
    BadRequestError, NotFoundError, ConflictError, InternalServerError
)
from .connection import get_db_pool
from .users import USER_SCHEMA


logger = logging.getLogger(__name__)

API_KEY_COLUMNS = [
    "id", "name", "description", "key_prefix", "status", "expires_at", "last_used_at",
    "ip_whitelist", "domain_whitelist", "created_at", "updated_at"
]

API_KEY_SCHEMA = ResourceSchema(
    name="api_keys",
    table="api_keys",
    fields={
        "id": FieldSpec(FieldKind.UUID),
        "name": FieldSpec(FieldKind.STRING),
        "key_prefix": FieldSpec(FieldKind.STRING),
        "status": FieldSpec(FieldKind.ENUM),
        "expires_at": FieldSpec(FieldKind.DATE, nullable=True),
        "last_used_at": FieldSpec(FieldKind.DATE, nullable=True),
        "created_at": FieldSpec(FieldKind.DATE),
        "updated_at": FieldSpec(FieldKind.DATE),
        "created_by": FieldSpec(FieldKind.RELATION, column="created_by_id", target=USER_SCHEMA),
    }
)


def _to_api_key(row: Dict[str, Any]) -> ApiKey:
    return ApiKeyRow.model_validate(row).to_api_key()


def api_key_repository() -> AsyncpgRepository:
    return AsyncpgRepository(
        API_KEY_SCHEMA,
        API_KEY_COLUMNS,
        relations={"created_by": ["id", "name", "email"]},
        row_mapper=_to_api_key
    )


async def insert_api_key(
    key_data: ApiKeyCreate,
    key_prefix: str,
    key_hash: str
) -> ApiKey:
    """Store a newly issued API key.

    Args:
        key_data: Key metadata supplied by the caller
        key_prefix: Leading characters of the plain key, used for lookup
        key_hash: Password hash of the plain key

    Returns:
        The stored key's metadata

    Raises:
        ConflictError: If a key with the same name exists
        NotFoundError: If ``created_by_id`` references no user
        InternalServerError: If database operation fails
    """
    pool = await get_db_pool()

    try:
        async with pool.acquire() as conn:
            key_id = await conn.fetchval(
                """
                INSERT INTO api_keys (
                    name, description, key_prefix, key_hash, status, expires_at,
                    ip_whitelist, domain_whitelist, created_by_id
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                RETURNING id
                """,
                key_data.name,
                key_data.description,
                key_prefix,
                key_hash,
                ApiKeyStatus.ACTIVE.value,
                key_data.expires_at,
                key_data.ip_whitelist,
                key_data.domain_whitelist,
                key_data.created_by_id
            )

    except asyncpg.UniqueViolationError as e:
        logger.error(f"Unique constraint violation creating API key: {e}")
        raise ConflictError(f"An API key named '{key_data.name}' already exists")
    except asyncpg.ForeignKeyViolationError as e:
        logger.error(f"Unknown creator for API key: {e}")
        raise NotFoundError(f"User '{key_data.created_by_id}' not found")
    except asyncpg.PostgresError as e:
        logger.error(f"Database error creating API key: {e}")
        raise InternalServerError(f"Database error: {e}")

    logger.info(f"Created API key {key_id} ({key_prefix}...)")
    return await get_api_key(key_id)


async def get_api_key(key_id: UUID) -> ApiKey:
    """Get an API key's metadata, including its creator.

    Raises:
        NotFoundError: If the key doesn't exist
        InternalServerError: If database operation fails
    """
    records = await api_key_repository().find(Comparison(("id",), "equals", key_id), [], 1)
    if not records:
        raise NotFoundError(f"API key '{key_id}' not found")
    return records[0]


async def list_api_keys(
    request: PageRequest,
    base_url: str,
    config: Optional[PaginationConfig] = None
) -> Page[ApiKey]:
    """List API keys one keyset page at a time.

    ``filter[created_by.<field>]`` matches on the creating user.

    Raises:
        PaginationError: On invalid pagination input
        InternalServerError: If database operation fails
    """
    return await paginate(
        api_key_repository(),
        request,
        base_url,
        config=config,
        schema=API_KEY_SCHEMA
    )


async def _fetch_status(conn, key_id: UUID) -> str:
    status = await conn.fetchval("SELECT status FROM api_keys WHERE id = $1", key_id)
    if status is None:
        raise NotFoundError(f"API key '{key_id}' not found")
    return status


async def update_api_key(key_id: UUID, key_data: ApiKeyUpdate) -> ApiKey:
    """Update the supplied fields of an API key.

    Raises:
        NotFoundError: If the key doesn't exist
        BadRequestError: If the key is revoked
        ConflictError: If the new name is taken
        InternalServerError: If database operation fails
    """
    # Only description and expires_at may be cleared with an explicit null
    changes = {
        column: value
        for column, value in key_data.model_dump(exclude_unset=True).items()
        if value is not None or column in ("description", "expires_at")
    }
    pool = await get_db_pool()

    try:
        async with pool.acquire() as conn:
            async with conn.transaction():
                status = await _fetch_status(conn, key_id)
                if status == ApiKeyStatus.REVOKED.value:
                    raise BadRequestError("Cannot update revoked API key")

                if changes:
                    assignments = []
                    params: List[Any] = []
                    for column, value in changes.items():
                        params.append(value)
                        assignments.append(f"{column} = ${len(params)}")
                    params.append(key_id)
                    await conn.execute(
                        f"UPDATE api_keys SET {', '.join(assignments)}, updated_at = NOW() "
                        f"WHERE id = ${len(params)}",
                        *params
                    )

    except (NotFoundError, BadRequestError):
        raise
    except asyncpg.UniqueViolationError as e:
        logger.error(f"Unique constraint violation updating API key: {e}")
        raise ConflictError(f"An API key named '{changes.get('name')}' already exists")
    except asyncpg.PostgresError as e:
        logger.error(f"Database error updating API key: {e}")
        raise InternalServerError(f"Database error: {e}")

    logger.info(f"Updated API key {key_id}: {sorted(changes)}")
    return await get_api_key(key_id)


async def revoke_api_key(key_id: UUID) -> ApiKey:
    """Mark an API key as revoked.

    Raises:
        NotFoundError: If the key doesn't exist
        BadRequestError: If the key is already revoked
        InternalServerError: If database operation fails
    """
    pool = await get_db_pool()

    try:
        async with pool.acquire() as conn:
            async with conn.transaction():
                status = await _fetch_status(conn, key_id)
                if status == ApiKeyStatus.REVOKED.value:
                    raise BadRequestError("API key is already revoked")
                await conn.execute(
                    "UPDATE api_keys SET status = $1, updated_at = NOW() WHERE id = $2",
                    ApiKeyStatus.REVOKED.value,
                    key_id
                )

    except (NotFoundError, BadRequestError):
        raise
    except asyncpg.PostgresError as e:
        logger.error(f"Database error revoking API key: {e}")
        raise InternalServerError(f"Database error: {e}")

    logger.info(f"Revoked API key {key_id}")
    return await get_api_key(key_id)


async def delete_api_key(key_id: UUID) -> bool:
    """Delete an API key permanently.

    Raises:
        NotFoundError: If the key doesn't exist
        InternalServerError: If database operation fails
    """
    pool = await get_db_pool()

    try:
        async with pool.acquire() as conn:
            result = await conn.execute("DELETE FROM api_keys WHERE id = $1", key_id)

            if result.split()[-1] == "0":  # "DELETE 0" means no row matched
                raise NotFoundError(f"API key '{key_id}' not found")

            logger.info(f"Deleted API key {key_id}")
            return True

    except NotFoundError:
        raise
    except asyncpg.PostgresError as e:
        logger.error(f"Database error deleting API key: {e}")
        raise InternalServerError(f"Database error: {e}")


async def find_keys_by_prefix(key_prefix: str) -> List[Dict[str, Any]]:
    """Credential rows sharing a lookup prefix, for verification.

    Returns:
        Dicts with id, key_hash, status, expires_at and the whitelists
    """
    pool = await get_db_pool()

    try:
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT id, key_hash, status, expires_at, ip_whitelist, domain_whitelist
                FROM api_keys
                WHERE key_prefix = $1
                """,
                key_prefix
            )
            return [dict(row) for row in rows]

    except asyncpg.PostgresError as e:
        logger.error(f"Database error looking up API key: {e}")
        raise InternalServerError(f"Database error: {e}")


async def touch_last_used(key_id: UUID) -> None:
    """Record that a key was just used."""
    pool = await get_db_pool()

    try:
        async with pool.acquire() as conn:
            await conn.execute("UPDATE api_keys SET last_used_at = NOW() WHERE id = $1", key_id)
    except asyncpg.PostgresError as e:
        logger.error(f"Database error updating API key usage: {e}")
        raise InternalServerError(f"Database error: {e}")
