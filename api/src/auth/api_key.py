"""API key issuing, hashing and validation."""

import ipaddress
import logging
import secrets
from datetime import datetime, timezone
from typing import Iterable, Optional
from urllib.parse import urlparse
from uuid import UUID

from passlib.context import CryptContext

from ..db import api_keys as api_key_store
from ..errors.problem_details import ForbiddenError, UnauthorizedError
from ..models.api_keys import ApiKeyCreate, ApiKeyCreated, ApiKeyStatus


logger = logging.getLogger(__name__)

API_KEY_PREFIX = "ak_"
# Stored in clear beside the hash; only rows sharing it are verified
LOOKUP_PREFIX_LENGTH = 12

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def generate_api_key(prefix: str = API_KEY_PREFIX) -> str:
    """Generate a new API key.

    Returns:
        ``prefix`` followed by a cryptographically secure url-safe secret
    """
    return f"{prefix}{secrets.token_urlsafe(32)}"


def lookup_prefix(api_key: str) -> str:
    return api_key[:LOOKUP_PREFIX_LENGTH]


def hash_api_key(api_key: str) -> str:
    """Hash an API key for storage."""
    return pwd_context.hash(api_key)


def verify_api_key(api_key: str, hashed: str) -> bool:
    """Verify an API key against its stored hash.

    Returns:
        True if the key matches, False otherwise (including unreadable hashes)
    """
    try:
        return pwd_context.verify(api_key, hashed)
    except (ValueError, TypeError):
        return False


def _origin_host(origin: Optional[str]) -> Optional[str]:
    if not origin:
        return None
    host = urlparse(origin).hostname
    return host.lower() if host else None


def is_whitelisted(
    ip_address: Optional[str],
    origin: Optional[str],
    ip_whitelist: Iterable[str],
    domain_whitelist: Iterable[str]
) -> bool:
    """Check a client against a key's whitelists.

    A key without any whitelist entries accepts every client. Otherwise the
    client IP must match an address or CIDR range, or the Origin/Referer
    host must equal a whitelisted domain.
    """
    ip_entries = list(ip_whitelist or [])
    domain_entries = list(domain_whitelist or [])
    if not ip_entries and not domain_entries:
        return True

    if ip_address:
        try:
            client = ipaddress.ip_address(ip_address)
        except ValueError:
            client = None
        if client is not None:
            for entry in ip_entries:
                try:
                    if client in ipaddress.ip_network(entry, strict=False):
                        return True
                except ValueError:
                    logger.warning(f"Ignoring malformed whitelist entry: {entry}")

    host = _origin_host(origin)
    return host is not None and host in domain_entries


async def issue_api_key(key_data: ApiKeyCreate, prefix: str = API_KEY_PREFIX) -> ApiKeyCreated:
    """Generate, hash and store a new API key.

    Returns:
        The key's metadata plus the plain key (only returned here, never stored)
    """
    api_key = generate_api_key(prefix)
    stored = await api_key_store.insert_api_key(key_data, lookup_prefix(api_key), hash_api_key(api_key))
    return ApiKeyCreated(**stored.model_dump(), key=api_key)


async def validate_api_key(
    api_key: str,
    ip_address: Optional[str] = None,
    origin: Optional[str] = None
) -> UUID:
    """Validate an API key for a client and return its id.

    Raises:
        UnauthorizedError: If the key is unknown, revoked or expired
        ForbiddenError: If the client is not whitelisted for the key
    """
    candidates = await api_key_store.find_keys_by_prefix(lookup_prefix(api_key))
    match = next((row for row in candidates if verify_api_key(api_key, row["key_hash"])), None)
    if match is None:
        raise UnauthorizedError("Invalid API key")

    if match["status"] == ApiKeyStatus.REVOKED.value:
        raise UnauthorizedError("API key revoked")

    expires_at = match.get("expires_at")
    if expires_at is not None and expires_at <= datetime.now(timezone.utc):
        raise UnauthorizedError("API key expired")

    if not is_whitelisted(ip_address, origin, match.get("ip_whitelist"), match.get("domain_whitelist")):
        raise ForbiddenError("Access denied: IP address or domain not whitelisted")

    await api_key_store.touch_last_used(match["id"])
    return match["id"]
