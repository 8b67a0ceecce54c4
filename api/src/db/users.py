"""Database operations for users."""

import logging
from typing import Optional
from uuid import UUID

import asyncpg

from ..models.users import User, UserCreate, UserRow, UserUpdate
from ..pagination import FieldKind, FieldSpec, Page, PageRequest, PaginationConfig, ResourceSchema, paginate
from ..pagination.sql import AsyncpgRepository
from ..errors.problem_details import (
    NotFoundError, ConflictError, InternalServerError
)
from .connection import get_db_pool


logger = logging.getLogger(__name__)

USER_COLUMNS = ["id", "name", "email", "role", "created_at", "updated_at"]

USER_SCHEMA = ResourceSchema(
    name="users",
    table="users",
    fields={
        "id": FieldSpec(FieldKind.UUID),
        "name": FieldSpec(FieldKind.STRING),
        "email": FieldSpec(FieldKind.STRING),
        "role": FieldSpec(FieldKind.ENUM),
        "created_at": FieldSpec(FieldKind.DATE),
        "updated_at": FieldSpec(FieldKind.DATE),
    }
)


def _to_user(row) -> User:
    return UserRow.model_validate(dict(row)).to_user()


def user_repository() -> AsyncpgRepository:
    return AsyncpgRepository(USER_SCHEMA, USER_COLUMNS, row_mapper=_to_user)


async def create_user(user_data: UserCreate) -> User:
    """Create a new user.

    Args:
        user_data: User creation data

    Returns:
        Created user

    Raises:
        ConflictError: If the email is already registered
        InternalServerError: If database operation fails
    """
    pool = await get_db_pool()

    try:
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO users (name, email, role)
                VALUES ($1, $2, $3)
                RETURNING {", ".join(USER_COLUMNS)}
                """,
                user_data.name,
                user_data.email,
                user_data.role.value
            )

            if not row:
                raise InternalServerError("Failed to create user")

            user = _to_user(row)
            logger.info(f"Created user {user.id}")
            return user

    except asyncpg.UniqueViolationError as e:
        logger.error(f"Unique constraint violation creating user: {e}")
        raise ConflictError(f"User with email '{user_data.email}' already exists")
    except InternalServerError:
        raise
    except asyncpg.PostgresError as e:
        logger.error(f"Database error creating user: {e}")
        raise InternalServerError(f"Database error: {e}")
    except Exception as e:
        logger.error(f"Unexpected error creating user: {e}")
        raise InternalServerError(f"Unexpected error: {e}")


async def get_user(user_id: UUID) -> User:
    """Get a user by id.

    Raises:
        NotFoundError: If the user doesn't exist
        InternalServerError: If database operation fails
    """
    pool = await get_db_pool()

    try:
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {', '.join(USER_COLUMNS)} FROM users WHERE id = $1",
                user_id
            )

            if not row:
                raise NotFoundError(f"User '{user_id}' not found")

            logger.debug(f"Retrieved user {user_id}")
            return _to_user(row)

    except NotFoundError:
        raise
    except asyncpg.PostgresError as e:
        logger.error(f"Database error retrieving user: {e}")
        raise InternalServerError(f"Database error: {e}")
    except Exception as e:
        logger.error(f"Unexpected error retrieving user: {e}")
        raise InternalServerError(f"Unexpected error: {e}")


async def list_users(
    request: PageRequest,
    base_url: str,
    config: Optional[PaginationConfig] = None
) -> Page[User]:
    """List users one keyset page at a time.

    Args:
        request: Parsed ``page[...]``, ``sort`` and ``filter[...]`` parameters
        base_url: URL the navigation links are built on
        config: Page size limits

    Returns:
        Page of users with meta and links

    Raises:
        PaginationError: On invalid pagination input
        InternalServerError: If database operation fails
    """
    return await paginate(
        user_repository(),
        request,
        base_url,
        config=config,
        schema=USER_SCHEMA
    )


async def update_user(user_id: UUID, user_data: UserUpdate) -> User:
    """Update the supplied fields of a user.

    Raises:
        NotFoundError: If the user doesn't exist
        ConflictError: If the new email is already registered
        InternalServerError: If database operation fails
    """
    changes = user_data.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        return await get_user(user_id)

    assignments = []
    params = []
    for column, value in changes.items():
        params.append(value.value if hasattr(value, "value") else value)
        assignments.append(f"{column} = ${len(params)}")
    params.append(user_id)

    pool = await get_db_pool()

    try:
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users SET {", ".join(assignments)}, updated_at = NOW()
                WHERE id = ${len(params)}
                RETURNING {", ".join(USER_COLUMNS)}
                """,
                *params
            )

            if not row:
                raise NotFoundError(f"User '{user_id}' not found")

            logger.info(f"Updated user {user_id}: {sorted(changes)}")
            return _to_user(row)

    except NotFoundError:
        raise
    except asyncpg.UniqueViolationError as e:
        logger.error(f"Unique constraint violation updating user: {e}")
        raise ConflictError(f"User with email '{changes.get('email')}' already exists")
    except asyncpg.PostgresError as e:
        logger.error(f"Database error updating user: {e}")
        raise InternalServerError(f"Database error: {e}")
    except Exception as e:
        logger.error(f"Unexpected error updating user: {e}")
        raise InternalServerError(f"Unexpected error: {e}")


async def delete_user(user_id: UUID) -> bool:
    """Delete a user.

    Returns:
        True if deleted

    Raises:
        NotFoundError: If the user doesn't exist
        InternalServerError: If database operation fails
    """
    pool = await get_db_pool()

    try:
        async with pool.acquire() as conn:
            result = await conn.execute("DELETE FROM users WHERE id = $1", user_id)

            if result.split()[-1] == "0":  # "DELETE 0" means no row matched
                raise NotFoundError(f"User '{user_id}' not found")

            logger.info(f"Deleted user {user_id}")
            return True

    except NotFoundError:
        raise
    except asyncpg.PostgresError as e:
        logger.error(f"Database error deleting user: {e}")
        raise InternalServerError(f"Database error: {e}")
    except Exception as e:
        logger.error(f"Unexpected error deleting user: {e}")
        raise InternalServerError(f"Unexpected error: {e}")
