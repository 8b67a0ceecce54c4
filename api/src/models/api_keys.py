"""Pydantic models for API keys."""

import ipaddress
import re
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .users import UserSummary


DOMAIN_PATTERN = re.compile(
    r"^(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)*[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$"
)


class ApiKeyStatus(str, Enum):
    ACTIVE = "ACTIVE"
    REVOKED = "REVOKED"
    EXPIRED = "EXPIRED"


def _validate_ip_entries(entries: Optional[List[str]]) -> Optional[List[str]]:
    if entries is None:
        return None
    normalized = []
    for entry in entries:
        value = entry.strip()
        try:
            if "/" in value:
                normalized.append(str(ipaddress.ip_network(value, strict=False)))
            else:
                normalized.append(str(ipaddress.ip_address(value)))
        except ValueError:
            raise ValueError(f"Invalid IP address or CIDR range: {entry}")
    return normalized


def _validate_domain_entries(entries: Optional[List[str]]) -> Optional[List[str]]:
    if entries is None:
        return None
    normalized = []
    for entry in entries:
        value = entry.strip().lower()
        if not DOMAIN_PATTERN.match(value):
            raise ValueError(f"Invalid domain: {entry}")
        normalized.append(value)
    return normalized


class ApiKeyCreate(BaseModel):
    """Model for issuing a new API key."""

    name: str = Field(..., min_length=1, max_length=100, description="Unique, human-readable name")
    description: Optional[str] = Field(default=None, max_length=500)
    expires_at: Optional[datetime] = Field(default=None, description="Expiry timestamp; null never expires")
    ip_whitelist: List[str] = Field(
        default_factory=list,
        description="IP addresses or CIDR ranges allowed to use the key"
    )
    domain_whitelist: List[str] = Field(
        default_factory=list,
        description="Origin host names allowed to use the key"
    )
    created_by_id: Optional[UUID] = Field(default=None, description="User that issued the key")

    @field_validator("ip_whitelist")
    @classmethod
    def validate_ip_whitelist(cls, v):
        """Accept IP addresses and CIDR ranges, normalized."""
        return _validate_ip_entries(v)

    @field_validator("domain_whitelist")
    @classmethod
    def validate_domain_whitelist(cls, v):
        """Accept lower-cased host names."""
        return _validate_domain_entries(v)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Storefront",
                "description": "Key for the public storefront",
                "expires_at": "2030-01-01T00:00:00Z",
                "ip_whitelist": ["203.0.113.0/24"],
                "domain_whitelist": ["shop.example.com"]
            }
        }
    )


class ApiKeyUpdate(BaseModel):
    """Model for updating an API key; omitted fields are unchanged."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    expires_at: Optional[datetime] = None
    ip_whitelist: Optional[List[str]] = None
    domain_whitelist: Optional[List[str]] = None

    @field_validator("ip_whitelist")
    @classmethod
    def validate_ip_whitelist(cls, v):
        return _validate_ip_entries(v)

    @field_validator("domain_whitelist")
    @classmethod
    def validate_domain_whitelist(cls, v):
        return _validate_domain_entries(v)


class ApiKey(BaseModel):
    """API key metadata; the secret itself is never returned after creation."""

    id: UUID
    name: str
    description: Optional[str] = None
    key_prefix: str = Field(description="Leading characters of the key, for identification")
    status: ApiKeyStatus
    expires_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    ip_whitelist: List[str] = Field(default_factory=list)
    domain_whitelist: List[str] = Field(default_factory=list)
    created_by: Optional[UserSummary] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ApiKeyCreated(ApiKey):
    """Response for a newly issued key, carrying the plain secret once."""

    key: str = Field(description="The API key; store it now, it cannot be retrieved again")


def effective_status(status: ApiKeyStatus, expires_at: Optional[datetime], now: Optional[datetime] = None) -> ApiKeyStatus:
    """ACTIVE keys past their expiry read as EXPIRED."""
    now = now or datetime.now(timezone.utc)
    if status == ApiKeyStatus.ACTIVE and expires_at is not None:
        expiry = expires_at if expires_at.tzinfo else expires_at.replace(tzinfo=timezone.utc)
        if expiry <= now:
            return ApiKeyStatus.EXPIRED
    return status


# Database row model (for internal use)
class ApiKeyRow(BaseModel):
    """Model representing an api_keys row with its embedded creator."""

    id: UUID
    name: str
    description: Optional[str] = None
    key_prefix: str
    status: ApiKeyStatus
    expires_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    ip_whitelist: Optional[List[str]] = None
    domain_whitelist: Optional[List[str]] = None
    created_by: Optional[UserSummary] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    def to_api_key(self) -> ApiKey:
        """Convert to public ApiKey model."""
        return ApiKey(
            id=self.id,
            name=self.name,
            description=self.description,
            key_prefix=self.key_prefix,
            status=effective_status(self.status, self.expires_at),
            expires_at=self.expires_at,
            last_used_at=self.last_used_at,
            ip_whitelist=self.ip_whitelist or [],
            domain_whitelist=self.domain_whitelist or [],
            created_by=self.created_by,
            created_at=self.created_at,
            updated_at=self.updated_at
        )
