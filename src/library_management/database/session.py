"""
Database session management for the Library Management MCP Server.

Sessions are short-lived: one per tool call or resource read. Writes that
must be atomic (borrow, return) run inside a single session and commit once.
"""

import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_config
from .errors import ConflictError, LibraryError
from .schema import Base

T = TypeVar("T")

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Manages database connections and sessions for the MCP server.

    - Lazily creates the engine and session factory
    - Enables foreign keys on SQLite
    - Provides transactional ``session_scope``
    """

    def __init__(self, database_url: str | None = None, echo: bool | None = None):
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL. If None, uses the configured URL.
            echo: Echo SQL statements. If None, uses the configured value.
        """
        config = get_config()
        if database_url is None:
            database_url = config.database_url
        if echo is None:
            echo = config.database_echo

        url = make_url(database_url)
        if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
            # Ensure parent directory exists for file databases
            Path(url.database).parent.mkdir(exist_ok=True, parents=True)

        self.database_url = database_url
        self.echo = echo
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def is_sqlite(self) -> bool:
        return make_url(self.database_url).get_backend_name() == "sqlite"

    @property
    def engine(self) -> Engine:
        """
        Get or create the database engine.

        In-memory SQLite uses a StaticPool so every session sees the same
        database; file SQLite uses a regular pool so concurrent sessions get
        their own connections (and their own transactions).
        """
        if self._engine is None:
            if self.is_sqlite:
                url = make_url(self.database_url)
                kwargs = {"connect_args": {"check_same_thread": False}, "echo": self.echo}
                if url.database in (None, "", ":memory:"):
                    kwargs["poolclass"] = StaticPool
                self._engine = create_engine(self.database_url, **kwargs)

                @event.listens_for(self._engine, "connect")
                def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.close()
            else:
                self._engine = create_engine(
                    self.database_url,
                    pool_size=10,
                    max_overflow=20,
                    pool_pre_ping=True,
                    echo=self.echo,
                )

            logger.info("Database engine created: %s", self._engine.url)

        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,  # Keep objects usable after commit
            )
        return self._session_factory

    def create_session(self) -> Session:
        """Create a new database session. Close it (or use session_scope) when done."""
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for database operations.

        ```python
        with db_manager.session_scope() as session:
            item = session.get(Item, item_id)
        # Session is automatically committed or rolled back
        ```
        """
        session = self.create_session()
        try:
            yield session
            session.commit()
            logger.debug("Database transaction committed successfully")
        except Exception:
            logger.exception("Database error, rolling back")
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self, drop_existing: bool = False) -> None:
        """
        Initialize the database schema.

        Args:
            drop_existing: If True, drop all tables before creating
        """
        engine = self.engine

        if drop_existing:
            logger.warning("Dropping all existing tables...")
            Base.metadata.drop_all(bind=engine)

        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialization complete")

    def verify_connection(self) -> bool:
        """Return True if a trivial query succeeds (used for health checks)."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection verified")
            return True
        except SQLAlchemyError:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        """Dispose of the engine. Called when the server shuts down."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None


_db_manager: DatabaseManager | None = None


def get_db_manager(database_url: str | None = None) -> DatabaseManager:
    """
    Get the global database manager instance.

    Args:
        database_url: Database URL (only used on first call)
    """
    global _db_manager  # noqa: PLW0603 - Singleton pattern for database manager

    if _db_manager is None:
        _db_manager = DatabaseManager(database_url)

    return _db_manager


def set_db_manager(manager: DatabaseManager | None) -> None:
    """Replace the global database manager (tests, alternate databases)."""
    global _db_manager  # noqa: PLW0603

    if _db_manager is not None and _db_manager is not manager:
        _db_manager.close()
    _db_manager = manager


def get_session() -> Session:
    """
    Get a new database session.

    Prefer session_scope() for automatic commit/rollback. Sessions returned
    here are used as context managers (``with get_session() as session``) by
    handlers whose repositories commit explicitly.
    """
    return get_db_manager().create_session()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Convenience context manager around the global manager's session_scope."""
    with get_db_manager().session_scope() as session:
        yield session


def safe_commit(session: Session, operation: str) -> None:
    """
    Commit, translating store failures into library errors.

    Raises:
        ConflictError: On a constraint violation
        LibraryError: On any other store failure
    """
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise ConflictError(f"Database operation '{operation}' violates a constraint") from e
    except SQLAlchemyError as e:
        session.rollback()
        raise LibraryError(f"Database operation '{operation}' failed: {e!s}") from e


def safe_query(session: Session, query_func: Callable[[Session], T], error_msg: str) -> T:
    """
    Execute a query, translating store failures into LibraryError.

    Library errors raised by ``query_func`` pass through unchanged.
    """
    try:
        return query_func(session)
    except LibraryError:
        raise
    except SQLAlchemyError as e:
        logger.exception("Query failed")
        session.rollback()
        raise LibraryError(f"{error_msg}: Database query failed") from e
