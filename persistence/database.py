"""
Database Lifecycle and Session Management

One GameDatabase object owns the SQLite file: open() creates the engine
and applies pending migrations, session_scope() runs a unit of work in a
transaction, close() releases the connection.
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Optional, Sequence

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from .migrations import MIGRATIONS, Migration, get_schema_version, run_migrations

logger = logging.getLogger(__name__)


def database_url(path: str) -> str:
    """Turn a file path (or ':memory:') into a SQLite URL; URLs pass through"""
    if '://' in path:
        return path
    if path == ':memory:':
        return 'sqlite://'
    return f'sqlite:///{path}'


class GameDatabase:
    """
    The single writer of the scores database.

    Usage:
        with GameDatabase('scores.db') as db:
            with db.session_scope() as session:
                session.query(...)
    """

    def __init__(self, path: str = ':memory:',
                 migrations: Sequence[Migration] = MIGRATIONS,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            path: SQLite file path, ':memory:', or a SQLAlchemy URL
            migrations: Migration list to apply on open
            clock: Returns the current time in seconds; injectable for tests
        """
        self.url = database_url(path)
        self._migrations = list(migrations)
        self._clock = clock
        self._engine: Optional[Engine] = None
        self._session_factory = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def open(self) -> 'GameDatabase':
        """
        Open the database and bring its schema up to date.

        Raises:
            MigrationError: if a migration fails; the database stays closed.
        """
        if self._engine is not None:
            return self

        logger.info(f"Opening database at: {self.url}")

        engine = create_engine(
            self.url,
            echo=False,  # Set to True for SQL debugging
            connect_args={'check_same_thread': False},
            poolclass=StaticPool,  # One shared connection
        )

        # pysqlite commits implicitly before DDL; take over BEGIN so that
        # migrations (DDL + version bump) are atomic
        @event.listens_for(engine, "connect")
        def disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

        try:
            version = run_migrations(engine, self._migrations)
        except Exception:
            engine.dispose()
            raise

        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

        logger.info(f"Database ready at schema version {version}")
        return self

    def close(self) -> None:
        """Close the database connection"""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection closed")

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def __enter__(self) -> 'GameDatabase':
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # =========================================================================
    # Access
    # =========================================================================

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database is not open")
        return self._engine

    def schema_version(self) -> int:
        return get_schema_version(self.engine)

    def now(self) -> int:
        """Current time in epoch milliseconds"""
        return int(self._clock() * 1000)

    def get_session(self) -> Session:
        if self._session_factory is None:
            raise RuntimeError("Database is not open")
        return self._session_factory()

    @contextmanager
    def session_scope(self):
        """
        Context manager for database sessions.

        Commits on success; rolls back and re-raises on any error.

        Usage:
            with db.session_scope() as session:
                session.add(...)
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database error, rolling back: {e}")
            raise
        finally:
            session.close()
