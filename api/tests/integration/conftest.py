"""Fixtures for tests running against a real PostgreSQL database."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateIndex, CreateTable

from src.config import Settings
from src.db.connection import get_db_pool
from src.db.models import Base
from src.main import create_app


async def _create_schema() -> None:
    dialect = postgresql.dialect()
    pool = await get_db_pool()
    async with pool.acquire() as conn:
        await conn.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")
        for table in Base.metadata.sorted_tables:
            await conn.execute(str(CreateTable(table, if_not_exists=True).compile(dialect=dialect)))
            for index in table.indexes:
                await conn.execute(str(CreateIndex(index, if_not_exists=True).compile(dialect=dialect)))


async def _truncate() -> None:
    pool = await get_db_pool()
    async with pool.acquire() as conn:
        await conn.execute("TRUNCATE api_keys, users")


@pytest.fixture
def live_client():
    """Client for an app with a real pool and authentication disabled."""
    settings = Settings(api_key_enabled=False, log_level="ERROR")
    with patch("src.main.get_settings", return_value=settings):
        app = create_app()
        with TestClient(app) as client:
            client.portal.call(_create_schema)
            client.portal.call(_truncate)
            yield client
            client.portal.call(_truncate)
