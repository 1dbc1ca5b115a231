"""
Database Persistence Layer - Core Engine.

============================================================
STORAGE CONNECTION HANDLE
============================================================

The service talks to its database through ONE explicitly
constructed handle:

    database = Database(DatabaseConfig(url=...))
    database.open()          # process start
    ...
    database.close()         # process shutdown

The handle is passed to every component that needs it.
There is no module-level engine or session singleton.

Requirements:
- SQLAlchemy ORM (PostgreSQL in production, SQLite for dev/tests)
- Explicit transaction management
- Structured logging
- Hard failures on persistence errors

SQLITE NOTE:
    SQLite has no row locks. Every transaction is started with
    BEGIN IMMEDIATE so writers serialize on the database lock
    (waiting up to sqlite_busy_timeout_seconds) instead of
    failing on a lock upgrade.

============================================================
"""

import logging
from contextlib import contextmanager
from typing import Dict, Generator, List, Optional

from sqlalchemy import create_engine, event, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from core.config import DatabaseConfig

logger = logging.getLogger(__name__)

# =============================================================
# DECLARATIVE BASE
# =============================================================

Base = declarative_base()


# =============================================================
# CUSTOM EXCEPTIONS
# =============================================================


class DatabasePersistenceError(Exception):
    """Raised when database persistence fails."""
    pass


class DatabaseConnectionError(DatabasePersistenceError):
    """Raised when database connection fails."""
    pass


class DatabaseInitializationError(DatabasePersistenceError):
    """Raised when database initialization fails."""
    pass


# =============================================================
# DATABASE HANDLE
# =============================================================


class Database:
    """
    Storage-connection handle with a defined lifecycle.

    Owns the SQLAlchemy engine and session factory.
    """

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self._config = config or DatabaseConfig()
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def config(self) -> DatabaseConfig:
        return self._config

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise DatabaseConnectionError("Database handle is not open")
        return self._engine

    # ---------------------------------------------------------
    # LIFECYCLE
    # ---------------------------------------------------------

    def open(self) -> "Database":
        """
        Create the engine and session factory.

        Safe to call twice; the second call is a no-op.
        """
        if self._engine is not None:
            return self

        logger.info(f"Opening database: {self._safe_url()}")

        if self._config.is_sqlite:
            self._engine = create_engine(
                self._config.url,
                echo=self._config.echo,
                connect_args={
                    "timeout": self._config.sqlite_busy_timeout_seconds,
                    "check_same_thread": False,
                },
            )
            self._install_sqlite_listeners(self._engine)
        else:
            self._engine = create_engine(
                self._config.url,
                pool_size=self._config.pool_size,
                max_overflow=self._config.max_overflow,
                pool_timeout=self._config.pool_timeout,
                pool_recycle=self._config.pool_recycle,
                pool_pre_ping=True,
                echo=self._config.echo,
            )

        self._session_factory = sessionmaker(
            bind=self._engine,
            autoflush=False,
            expire_on_commit=False,
        )
        return self

    def close(self) -> None:
        """Dispose the engine and every pooled connection."""
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("Database closed")

    def __enter__(self) -> "Database":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @staticmethod
    def _install_sqlite_listeners(engine: Engine) -> None:
        @event.listens_for(engine, "connect")
        def on_connect(dbapi_conn, connection_record):
            # Hand transaction control to SQLAlchemy so BEGIN/SAVEPOINT work
            dbapi_conn.isolation_level = None
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def on_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    def _safe_url(self) -> str:
        return self._config.url.split("@")[-1]

    # ---------------------------------------------------------
    # SESSION MANAGEMENT
    # ---------------------------------------------------------

    def new_session(self) -> Session:
        """
        Get a new database session.

        IMPORTANT: Caller is responsible for committing/closing.
        Prefer transaction() or session() instead.
        """
        if self._session_factory is None:
            raise DatabaseConnectionError("Database handle is not open")
        return self._session_factory()

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Session for reads. Rolls back whatever is left open.
        """
        session = self.new_session()
        try:
            yield session
        finally:
            session.rollback()
            session.close()

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """
        One atomic unit of work.

        Commits only if no exception occurs.
        Rolls back on ANY exception.

        SQLAlchemy failures are re-raised as DatabasePersistenceError;
        every other exception propagates unchanged.
        """
        session = self.new_session()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Database transaction failed, rolling back: {e}")
            session.rollback()
            raise DatabasePersistenceError(f"Transaction failed: {e}") from e
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    # ---------------------------------------------------------
    # INITIALIZATION
    # ---------------------------------------------------------

    def verify_connection(self) -> bool:
        """
        Verify database connection is working.

        Raises:
            DatabaseConnectionError if connection fails
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
            logger.info("Database connection verified successfully")
            return True
        except OperationalError as e:
            logger.error(f"Database connection failed: {e}")
            raise DatabaseConnectionError(f"Cannot connect to database: {e}") from e

    def create_all_tables(self) -> None:
        """
        Create all tables defined in ORM models.

        Raises:
            DatabaseInitializationError if table creation fails
        """
        from . import models  # noqa: F401

        try:
            logger.info("Creating database tables...")
            Base.metadata.create_all(bind=self.engine)
            logger.info("Database tables created successfully")
        except SQLAlchemyError as e:
            logger.error(f"Failed to create database tables: {e}")
            raise DatabaseInitializationError(f"Table creation failed: {e}") from e

    def initialize(self) -> None:
        """
        Full initialization sequence: open, verify, create tables.
        """
        self.open()
        try:
            self.verify_connection()
            self.create_all_tables()
        except Exception as e:
            logger.critical(f"DATABASE INITIALIZATION FAILED: {e}")
            raise

    def get_table_row_counts(self, tables: Optional[List[str]] = None) -> Dict[str, int]:
        """
        Get row counts for tables.

        Returns:
            Dict mapping table name to row count
        """
        from . import models  # noqa: F401

        names = tables or list(Base.metadata.tables.keys())
        counts = {}
        with self.engine.connect() as conn:
            for name in names:
                table = Base.metadata.tables[name]
                counts[name] = conn.execute(
                    select(func.count()).select_from(table)
                ).scalar_one()
        return counts


__all__ = [
    "Base",
    "Database",
    "DatabasePersistenceError",
    "DatabaseConnectionError",
    "DatabaseInitializationError",
]
