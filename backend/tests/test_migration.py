"""
Tests for the PostgreSQL table migration.

The migration reads DATABASE_URL from app.config and leaves SQLite
databases to init_db().
"""
import importlib.util
from pathlib import Path

import pytest

from app import config

MIGRATION_PATH = Path(__file__).resolve().parent.parent / "migrations" / "add_revenue_engine_tables.py"


@pytest.fixture
def migration():
    spec = importlib.util.spec_from_file_location("add_revenue_engine_tables", MIGRATION_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestMigration:

    def test_uses_app_database_url(self, migration):
        assert migration.DATABASE_URL == config.DATABASE_URL

    @pytest.mark.parametrize("url", ["sqlite://", "sqlite:///./revenue_engine.db"])
    def test_sqlite_url_is_skipped(self, migration, url):
        assert migration.run_migration(url) is False
