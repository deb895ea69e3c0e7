"""Database engine and transaction helpers.

This module provides:
- Database: Connection manager with WAL mode for concurrent access
- immediate_transaction: BEGIN IMMEDIATE sessions for writes, migrations
  and renames (the whole call holds the write lock)
- query_deadline: wall-clock cap for a single read statement

Busy contention is absorbed by SQLite's busy timeout only. A failure after
the timeout is terminal for the call; nothing here retries.
"""

from __future__ import annotations

import time
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import event, text
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, create_engine

from bucketstore.core.errors import QueryError

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = structlog.get_logger()

DEFAULT_BUSY_TIMEOUT_MS = 30000

# SQLite VM instructions between deadline checks
_PROGRESS_INTERVAL = 1000


class Database:
    """SQLite connection manager with WAL mode for concurrent access."""

    def __init__(self, db_path: Path, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        self.db_path = db_path
        self.busy_timeout_ms = busy_timeout_ms
        self.engine = self._create_engine()

    def _create_engine(self) -> Engine:
        engine = create_engine(
            f"sqlite:///{self.db_path}",
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
        )
        busy_timeout_ms = self.busy_timeout_ms

        def _on_connect(dbapi_conn: Any, _connection_record: Any) -> None:
            _configure_pragmas(dbapi_conn, busy_timeout_ms)

        event.listen(engine, "connect", _on_connect)
        return engine

    def create_all(self) -> None:
        """Create the fixed relations from SQLModel metadata."""
        SQLModel.metadata.create_all(self.engine)

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """ORM session for reads."""
        with Session(self.engine) as session:
            yield session

    @contextmanager
    def immediate_transaction(self) -> Generator[Session, None, None]:
        """
        Session with BEGIN IMMEDIATE for serializable writes.

        BEGIN IMMEDIATE acquires a RESERVED lock immediately, blocking
        other writers but allowing readers. DDL participates in the same
        transaction, so a failed migration leaves no partial ALTER behind.

        The session commits on successful exit and rolls back on exception.
        """
        with Session(self.engine) as session:
            session.execute(text("BEGIN IMMEDIATE"))
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise

    def dispose(self) -> None:
        """Close pooled connections."""
        self.engine.dispose()


def _configure_pragmas(dbapi_conn: Any, busy_timeout_ms: int) -> None:
    """Configure SQLite for concurrent access."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
    cursor.execute("PRAGMA synchronous=NORMAL")  # Safe with WAL
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@contextmanager
def query_deadline(session: Session, timeout_ms: int) -> Generator[None, None, None]:
    """Abort any statement run on ``session`` after ``timeout_ms``.

    Raises:
        QueryError: QUERY_TIMEOUT when the deadline interrupts a statement.
    """
    raw = session.connection().connection.driver_connection
    deadline = time.monotonic() + timeout_ms / 1000
    expired = False

    def _check() -> int:
        nonlocal expired
        if time.monotonic() > deadline:
            expired = True
            return 1
        return 0

    raw.set_progress_handler(_check, _PROGRESS_INTERVAL)
    try:
        yield
    except OperationalError as e:
        if expired:
            logger.warning("query_timeout", timeout_ms=timeout_ms)
            raise QueryError.timeout(timeout_ms) from e
        raise
    finally:
        raw.set_progress_handler(None, 0)
