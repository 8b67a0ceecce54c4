"""Authentication module for the Scaffold API.

This module provides:
- API key issuing with argon2 hashing and prefix lookup
- Validation against status, expiry and IP/domain whitelists
- Authentication middleware and FastAPI dependencies
"""

from .api_key import (
    generate_api_key,
    hash_api_key,
    verify_api_key,
    issue_api_key,
    validate_api_key,
    is_whitelisted
)

from .middleware import (
    AuthenticationMiddleware,
    extract_api_key,
    get_client_ip,
    api_key_scheme
)

from .dependencies import (
    get_current_api_key_id,
    CurrentApiKeyId
)

__all__ = [
    # API key management
    "generate_api_key",
    "hash_api_key",
    "verify_api_key",
    "issue_api_key",
    "validate_api_key",
    "is_whitelisted",

    # Middleware
    "AuthenticationMiddleware",
    "extract_api_key",
    "get_client_ip",
    "api_key_scheme",

    # Dependencies
    "get_current_api_key_id",
    "CurrentApiKeyId"
]
