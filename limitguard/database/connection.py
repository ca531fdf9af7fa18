"""
Database connection management.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


class DatabaseConfig:
    """Database configuration."""

    def __init__(
        self,
        url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        pool_timeout: float = 2.0,
        pool_recycle: int = 3600,
        connect_timeout: int = 2,
        echo: bool = False,
    ):
        """
        Initialize database configuration.

        Args:
            url: Database connection URL
            pool_size: Number of connections to maintain in pool
            max_overflow: Maximum overflow connections beyond pool_size
            pool_timeout: Timeout for getting connection from pool
            pool_recycle: Recycle connections after this many seconds
            connect_timeout: Driver-level connect timeout in seconds
            echo: Echo SQL statements for debugging
        """
        self.url = url
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.pool_timeout = pool_timeout
        self.pool_recycle = pool_recycle
        self.connect_timeout = connect_timeout
        self.echo = echo


class DatabaseConnection:
    """Database connection manager."""

    def __init__(self, config: DatabaseConfig):
        """
        Initialize database connection.

        Args:
            config: Database configuration
        """
        self.config = config
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    def _engine_kwargs(self) -> dict[str, Any]:
        """Build create_engine() arguments suited to the URL's dialect."""
        url = make_url(self.config.url)
        backend = url.get_backend_name()
        kwargs: dict[str, Any] = {
            "echo": self.config.echo,
            "pool_pre_ping": True,  # Verify connections before using
        }

        if backend == "sqlite":
            kwargs["connect_args"] = {
                "timeout": self.config.connect_timeout,
                "check_same_thread": False,
            }
            if url.database in (None, "", ":memory:"):
                # One shared connection, otherwise every checkout sees an empty database
                kwargs["poolclass"] = StaticPool
                return kwargs
        elif backend in ("postgresql", "mysql", "mariadb"):
            kwargs["connect_args"] = {"connect_timeout": self.config.connect_timeout}

        kwargs.update(
            pool_size=self.config.pool_size,
            max_overflow=self.config.max_overflow,
            pool_timeout=self.config.pool_timeout,
            pool_recycle=self.config.pool_recycle,
        )
        return kwargs

    def get_engine(self) -> Engine:
        """
        Get or create database engine.

        Returns:
            Engine instance
        """
        if self._engine is None:
            self._engine = create_engine(self.config.url, **self._engine_kwargs())
        return self._engine

    def get_session_factory(self) -> sessionmaker[Session]:
        """
        Get or create session factory.

        Returns:
            Session factory for creating database sessions
        """
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                self.get_engine(),
                class_=Session,
                expire_on_commit=False,
                autoflush=False,
            )
        return self._session_factory

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        """
        Get database session as a context manager.

        Commits on success and rolls back on error.

        Yields:
            Session instance
        """
        session_factory = self.get_session_factory()
        with session_factory() as session:
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise

    def close(self) -> None:
        """Close database connection and cleanup resources."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
