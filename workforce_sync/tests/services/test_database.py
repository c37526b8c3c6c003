"""Tests for database configuration and session scopes."""

import pytest
from sqlalchemy import func, inspect, select

from workforce_sync.config.settings import Settings
from workforce_sync.database import database
from workforce_sync.database.database import DatabaseConfig, session_scope
from workforce_sync.models.employee import Centre


class TestDatabaseConfig:
    """Tests for building connection parameters from settings."""

    def test_from_settings(self):
        """Test pool options and echo follow the settings."""
        settings = Settings(database_url="postgresql://u:p@db:5432/workforce", debug=True)
        settings.database_pool_size = 8

        config = DatabaseConfig.from_settings(settings)

        assert config.url == "postgresql://u:p@db:5432/workforce"
        assert config.pool_size == 8
        assert config.echo is True
        assert config.is_sqlite is False


class TestSessionScope:
    """Tests for the unit-of-work session scope."""

    def test_commits_on_success(self, session_factory):
        """Test work done inside the scope is committed."""
        with session_scope(session_factory) as session:
            session.add(Centre(code="C001", name="Gran Vía"))

        with session_scope(session_factory) as session:
            assert session.execute(select(func.count(Centre.id))).scalar_one() == 1

    def test_rolls_back_on_error(self, session_factory):
        """Test an exception discards the work and propagates."""
        with pytest.raises(RuntimeError):
            with session_scope(session_factory) as session:
                session.add(Centre(code="C001", name="Gran Vía"))
                session.flush()
                raise RuntimeError("boom")

        with session_scope(session_factory) as session:
            assert session.execute(select(func.count(Centre.id))).scalar_one() == 0


class TestInitDb:
    """Tests for creating the schema without migrations."""

    def test_creates_tables_on_sqlite(self):
        """Test every model table exists after init_db."""
        database.dispose_engine()
        try:
            database.init_db(DatabaseConfig(url="sqlite://"))

            tables = set(inspect(database.get_engine()).get_table_names())
            assert {"centres", "employees", "sync_job_logs", "dq_issues"} <= tables
        finally:
            database.dispose_engine()
