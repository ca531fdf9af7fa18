"""
Unit tests for database connection management.
"""

import pytest
from sqlalchemy import text
from sqlalchemy.pool import StaticPool

from limitguard.database.connection import DatabaseConfig, DatabaseConnection


class TestDatabaseConfig:
    """Tests for DatabaseConfig."""

    def test_defaults(self):
        """Test default configuration values."""
        config = DatabaseConfig(url="postgresql+psycopg://localhost/limits")

        assert config.pool_size == 5
        assert config.max_overflow == 10
        assert config.pool_timeout == 2.0
        assert config.pool_recycle == 3600
        assert config.connect_timeout == 2
        assert config.echo is False


class TestEngineArguments:
    """Tests for dialect-specific engine arguments."""

    def test_in_memory_sqlite_uses_static_pool(self):
        """Test in-memory SQLite shares one connection."""
        kwargs = DatabaseConnection(DatabaseConfig(url="sqlite://"))._engine_kwargs()

        assert kwargs["poolclass"] is StaticPool
        assert kwargs["connect_args"]["check_same_thread"] is False
        assert "pool_size" not in kwargs

    def test_file_sqlite_uses_pool(self):
        """Test file SQLite gets pool settings and a busy timeout."""
        kwargs = DatabaseConnection(
            DatabaseConfig(url="sqlite:///limits.db", connect_timeout=4)
        )._engine_kwargs()

        assert kwargs["connect_args"]["timeout"] == 4
        assert kwargs["pool_size"] == 5

    @pytest.mark.parametrize(
        "url", ["postgresql+psycopg://localhost/limits", "mysql+pymysql://localhost/limits"]
    )
    def test_server_dialects_get_connect_timeout(self, url):
        """Test network databases get a driver connect timeout."""
        kwargs = DatabaseConnection(DatabaseConfig(url=url, connect_timeout=3))._engine_kwargs()

        assert kwargs["connect_args"] == {"connect_timeout": 3}
        assert kwargs["pool_pre_ping"] is True
        assert kwargs["pool_recycle"] == 3600


class TestDatabaseConnection:
    """Tests for engine and session lifecycle."""

    @pytest.fixture
    def connection(self):
        """Create in-memory SQLite connection."""
        conn = DatabaseConnection(DatabaseConfig(url="sqlite://"))
        yield conn
        conn.close()

    def test_engine_is_cached(self, connection):
        """Test the engine is created once."""
        assert connection.get_engine() is connection.get_engine()

    def test_session_commits(self, connection):
        """Test work in a session is committed."""
        with connection.get_session() as session:
            session.execute(text("CREATE TABLE t (x INTEGER)"))
            session.execute(text("INSERT INTO t VALUES (1)"))

        with connection.get_session() as session:
            assert session.execute(text("SELECT COUNT(*) FROM t")).scalar() == 1

    def test_session_rolls_back_on_error(self, connection):
        """Test errors roll back and propagate."""
        with connection.get_session() as session:
            session.execute(text("CREATE TABLE t (x INTEGER)"))

        with pytest.raises(RuntimeError):
            with connection.get_session() as session:
                session.execute(text("INSERT INTO t VALUES (1)"))
                raise RuntimeError("abort")

        with connection.get_session() as session:
            assert session.execute(text("SELECT COUNT(*) FROM t")).scalar() == 0

    def test_close_resets_engine(self, connection):
        """Test close disposes the engine."""
        connection.get_engine()
        connection.get_session_factory()

        connection.close()

        assert connection._engine is None
        assert connection._session_factory is None
