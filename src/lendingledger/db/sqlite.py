"""Database connection and session management.

SQLite is the default ledger store. Server databases (PostgreSQL, MySQL)
work through ``LENDING_DATABASE_URL``; there the checkout protocol locks the
item row with ``SELECT ... FOR UPDATE``.

SQLite has no row locks, so write sessions open with ``BEGIN IMMEDIATE``:
the reserved lock is taken before the first read, which serializes every
check-then-act section against the file. Read sessions use a plain
deferred ``BEGIN`` and never wait on writers in WAL mode.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_config
from .models import Base

logger = logging.getLogger(__name__)


class Database:
    """Database connection and session manager."""

    def __init__(
        self,
        db_path: Optional[str] = None,
        url: Optional[str] = None,
        lock_timeout: Optional[float] = None,
    ):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file (``":memory:"`` allowed).
            url: Full SQLAlchemy URL; takes precedence over ``db_path``.
                 If neither is given, the configured location is used.
            lock_timeout: Seconds to wait for a competing write lock.
        """
        config = get_config()
        if url is None:
            if db_path is None:
                url = config.url
            elif str(db_path) == ":memory:":
                url = "sqlite:///:memory:"
            else:
                url = f"sqlite:///{db_path}"

        self.url = make_url(url)
        self.lock_timeout = lock_timeout if lock_timeout is not None else config.lock_timeout
        self.is_sqlite = self.url.get_backend_name() == "sqlite"
        self._is_memory = self.is_sqlite and self.url.database in (None, "", ":memory:")

        if self.is_sqlite and not self._is_memory:
            self.db_path: Optional[Path] = Path(self.url.database)
            self._ensure_directory()
        else:
            self.db_path = None

        if self._is_memory:
            # For in-memory databases, use StaticPool to reuse the same connection
            # This ensures all sessions share the same in-memory database
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        elif self.is_sqlite:
            self.engine = create_engine(
                self.url,
                echo=False,
                connect_args={"check_same_thread": False, "timeout": self.lock_timeout},
            )
        else:
            self.engine = create_engine(self.url, echo=False, pool_pre_ping=True)

        if self.is_sqlite:
            self._install_sqlite_hooks()
            self.write_engine = self.engine.execution_options(sqlite_begin="IMMEDIATE")
        else:
            self.write_engine = self.engine

        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _install_sqlite_hooks(self) -> None:
        """Take over transaction control from pysqlite."""
        is_memory = self._is_memory

        @event.listens_for(self.engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            # pysqlite would otherwise defer BEGIN until the first write
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            if not is_memory:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        @event.listens_for(self.engine, "begin")
        def _on_begin(conn):
            mode = conn.get_execution_options().get("sqlite_begin")
            conn.exec_driver_sql(f"BEGIN {mode}" if mode else "BEGIN")

    def create_tables(self) -> None:
        """Create all database tables."""
        # Import models to register them with Base
        from ..catalog.models import Item  # noqa: F401
        from ..lending.models import Loan  # noqa: F401

        logger.debug("Creating ledger tables on %s", self.url.render_as_string(hide_password=True))
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        """Close every pooled connection."""
        self.engine.dispose()

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager.

        Commits on a clean exit, rolls back on any exception (including
        ``KeyboardInterrupt`` and task cancellation), and always closes.
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def write_session(self) -> Generator[Session, None, None]:
        """Get a session whose transaction holds the write lock from the start.

        Used by every mutating protocol. Lock release is tied to commit or
        rollback, so the lock never outlives the ``with`` block.
        """
        session = self.SessionLocal(bind=self.write_engine)
        try:
            yield session
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    if _db is not None:
        _db.dispose()
    _db = None
