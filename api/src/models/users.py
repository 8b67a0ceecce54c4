"""Pydantic models for users."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class UserBase(BaseModel):
    """Base user model with common fields."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name",
        examples=["Ada Lovelace"]
    )
    email: EmailStr = Field(description="Unique email address")
    role: UserRole = Field(default=UserRole.USER, description="Authorization role")


class UserCreate(UserBase):
    """Model for creating a new user."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Ada Lovelace",
                "email": "ada@example.com",
                "role": "USER"
            }
        }
    )


class UserUpdate(BaseModel):
    """Model for partially updating a user; omitted fields are unchanged."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None


class User(UserBase):
    """Complete user model with all fields."""

    id: UUID = Field(description="User UUID")
    created_at: datetime = Field(description="Creation timestamp")
    updated_at: datetime = Field(description="Last update timestamp")

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": "550e8400-e29b-41d4-a716-446655440000",
                "name": "Ada Lovelace",
                "email": "ada@example.com",
                "role": "USER",
                "created_at": "2024-01-01T12:00:00Z",
                "updated_at": "2024-01-01T12:00:00Z"
            }
        }
    )


class UserSummary(BaseModel):
    """Embedded representation used by related resources."""

    id: UUID
    name: str
    email: str


# Database row model (for internal use)
class UserRow(BaseModel):
    """Model representing a users table row."""

    id: UUID
    name: str
    email: str
    role: UserRole
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    def to_user(self) -> User:
        """Convert to public User model."""
        return User(
            id=self.id,
            name=self.name,
            email=self.email,
            role=self.role,
            created_at=self.created_at,
            updated_at=self.updated_at
        )
