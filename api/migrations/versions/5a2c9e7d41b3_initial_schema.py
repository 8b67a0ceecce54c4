"""initial_schema

Revision ID: 5a2c9e7d41b3
Revises: 
Create Date: 2026-10-18 09:12:31.204118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5a2c9e7d41b3'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # gen_random_uuid() lives in pgcrypto before PostgreSQL 13
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table('users',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('role', sa.Text(), nullable=False, server_default='USER'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email', name='users_email_key'),
        sa.CheckConstraint("role IN ('USER', 'ADMIN')", name='users_role_check')
    )

    op.create_table('api_keys',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('key_prefix', sa.Text(), nullable=False),
        sa.Column('key_hash', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False, server_default='ACTIVE'),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('last_used_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('ip_whitelist', postgresql.ARRAY(sa.Text()), nullable=False, server_default='{}'),
        sa.Column('domain_whitelist', postgresql.ARRAY(sa.Text()), nullable=False, server_default='{}'),
        sa.Column('created_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='api_keys_name_key'),
        sa.CheckConstraint("status IN ('ACTIVE', 'REVOKED')", name='api_keys_status_check')
    )

    # Keyset pagination scans (created_at, id) in both directions
    op.create_index('users_created_at_id', 'users', ['created_at', 'id'], unique=False)
    op.create_index('api_keys_created_at_id', 'api_keys', ['created_at', 'id'], unique=False)
    op.create_index('api_keys_key_prefix', 'api_keys', ['key_prefix'], unique=False)


def downgrade() -> None:
    op.drop_index('api_keys_key_prefix', table_name='api_keys')
    op.drop_index('api_keys_created_at_id', table_name='api_keys')
    op.drop_index('users_created_at_id', table_name='users')

    # api_keys references users
    op.drop_table('api_keys')
    op.drop_table('users')
