"""SQLAlchemy models describing the Scaffold API schema."""

from sqlalchemy import (
    Column, Text, DateTime, ForeignKey, Index, UniqueConstraint, CheckConstraint, text
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func


Base = declarative_base()


class User(Base):
    """Users table model."""
    __tablename__ = 'users'

    id = Column(UUID(as_uuid=True), primary_key=True, server_default=text('gen_random_uuid()'))
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=False)
    role = Column(Text, nullable=False, server_default='USER')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('email', name='users_email_key'),
        CheckConstraint("role IN ('USER', 'ADMIN')", name='users_role_check'),
        Index('users_created_at_id', 'created_at', 'id'),
    )


class APIKey(Base):
    """API keys table model."""
    __tablename__ = 'api_keys'

    id = Column(UUID(as_uuid=True), primary_key=True, server_default=text('gen_random_uuid()'))
    name = Column(Text, nullable=False)
    description = Column(Text)
    key_prefix = Column(Text, nullable=False)
    key_hash = Column(Text, nullable=False)
    status = Column(Text, nullable=False, server_default='ACTIVE')
    expires_at = Column(DateTime(timezone=True))
    last_used_at = Column(DateTime(timezone=True))
    ip_whitelist = Column(ARRAY(Text), nullable=False, server_default='{}')
    domain_whitelist = Column(ARRAY(Text), nullable=False, server_default='{}')
    created_by_id = Column(UUID(as_uuid=True), ForeignKey('users.id', ondelete='SET NULL'))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('name', name='api_keys_name_key'),
        CheckConstraint("status IN ('ACTIVE', 'REVOKED')", name='api_keys_status_check'),
        Index('api_keys_key_prefix', 'key_prefix'),
        Index('api_keys_created_at_id', 'created_at', 'id'),
    )
