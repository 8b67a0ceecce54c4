"""Tests for migration file syntax and structure."""

import importlib.util
from pathlib import Path


MIGRATIONS_DIR = Path(__file__).parent.parent.parent / "migrations" / "versions"


def _initial_migration():
    migration_files = list(MIGRATIONS_DIR.glob("*_initial_schema.py"))
    assert len(migration_files) == 1, "Should have exactly one initial schema migration"
    return migration_files[0]


class TestMigrationSyntax:
    """Test that migration files are syntactically correct."""

    def test_initial_migration_imports(self):
        """Test that the initial migration file imports correctly."""
        spec = importlib.util.spec_from_file_location("migration", _initial_migration())
        migration_module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(migration_module)

        assert callable(migration_module.upgrade)
        assert callable(migration_module.downgrade)
        assert isinstance(migration_module.revision, str)
        assert migration_module.down_revision is None

    def test_migration_creates_all_required_tables(self):
        """Test that the migration creates every table, index and the extension."""
        content = _initial_migration().read_text()

        for table in ("users", "api_keys"):
            assert f"create_table('{table}'" in content, f"Migration should create {table} table"
            assert f"drop_table('{table}')" in content

        for index in ("users_created_at_id", "api_keys_created_at_id", "api_keys_key_prefix"):
            assert f"create_index('{index}'" in content
            assert f"drop_index('{index}'" in content

        assert "CREATE EXTENSION IF NOT EXISTS pgcrypto" in content

    def test_api_keys_dropped_before_users(self):
        """Test the downgrade drops the referencing table first."""
        content = _initial_migration().read_text()
        downgrade = content[content.index("def downgrade"):]

        assert downgrade.index("drop_table('api_keys')") < downgrade.index("drop_table('users')")
