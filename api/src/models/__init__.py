"""Data models for the Scaffold API."""

from .users import (
    User,
    UserBase,
    UserCreate,
    UserUpdate,
    UserRole,
    UserRow,
    UserSummary
)
from .api_keys import (
    ApiKey,
    ApiKeyCreate,
    ApiKeyCreated,
    ApiKeyRow,
    ApiKeyStatus,
    ApiKeyUpdate,
    effective_status
)

__all__ = [
    "User",
    "UserBase",
    "UserCreate",
    "UserUpdate",
    "UserRole",
    "UserRow",
    "UserSummary",
    "ApiKey",
    "ApiKeyCreate",
    "ApiKeyCreated",
    "ApiKeyRow",
    "ApiKeyStatus",
    "ApiKeyUpdate",
    "effective_status"
]
