import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool

from backend.app.config import settings
from backend.app.schema import SCHEMA_SQL

logger = logging.getLogger(__name__)


def _sqlite_path_from_url(database_url: str) -> str:
    # this should support:
    #   sqlite:///./data/app.db  -> ./data/app.db
    #   sqlite:////abs/path.db   -> /abs/path.db
    if not database_url.startswith("sqlite:"):
        raise ValueError("Only sqlite DATABASE_URL is supported")

    if database_url.startswith("sqlite:///./") or database_url.startswith("sqlite:///../"):
        return database_url.replace("sqlite:///", "", 1)

    if database_url.startswith("sqlite:////"):
        # absolute path
        return database_url.replace("sqlite:////", "/", 1)

    if database_url.startswith("sqlite:///"):
        # treat as absolute (/path...)
        return database_url.replace("sqlite://", "", 1)

    # last resort, hopefully we don't get there
    return database_url.replace("sqlite:", "", 1)

def get_db_path() -> str:
    return _sqlite_path_from_url(settings.database_url)

def connect(db_path: Optional[str] = None) -> sqlite3.Connection:
    """
    Open a connection in autocommit mode; multi-statement work goes through
    transaction() which issues BEGIN/COMMIT/ROLLBACK itself.
    """
    path = db_path or get_db_path()
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    # pooled connections are handed to whichever worker thread serves the request
    conn = sqlite3.connect(path, isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA journal_mode = WAL;")
    return conn

def init_db(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA_SQL)


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    BEGIN IMMEDIATE ... COMMIT, or ROLLBACK and re-raise on any error,
    including a failed COMMIT.

    IMMEDIATE takes the write lock up front so two writers never deadlock
    upgrading from a shared lock.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
        conn.execute("COMMIT")
    except Exception:
        # sqlite may already have rolled back on its own (e.g. disk full)
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise


engine: Optional[Engine] = None


def create_db_engine(db_path: Optional[str] = None, pool_size: Optional[int] = None) -> Engine:
    """
    QueuePool over connections made by connect(), so the raw-SQL code keeps
    sqlite3.Row and explicit transactions. Checkout waits at most
    pool_timeout seconds before raising sqlalchemy.exc.TimeoutError.
    """
    path = db_path or get_db_path()
    return create_engine(
        f"sqlite:///{path}",
        creator=lambda: connect(path),
        poolclass=QueuePool,
        pool_size=pool_size or settings.db_pool_size,
        max_overflow=0,
        pool_timeout=settings.db_pool_timeout,
        pool_pre_ping=True,
        echo=False,
    )


def init_engine(db_path: Optional[str] = None, pool_size: Optional[int] = None) -> Engine:
    """Create the process-wide engine and make sure the schema exists."""
    global engine

    new_engine = create_db_engine(db_path, pool_size)
    raw = new_engine.raw_connection()
    try:
        init_db(raw.driver_connection)
    finally:
        raw.close()

    engine = new_engine
    logger.info(f"Database engine ready: {new_engine.url} pool_size={new_engine.pool.size()}")
    return new_engine


def dispose_engine() -> None:
    global engine

    if engine is None:
        return
    engine.dispose()
    engine = None
    logger.info("Database engine disposed")


def get_engine() -> Engine:
    if engine is None:
        raise RuntimeError("Database not initialized. Call init_engine() first.")
    return engine


@contextmanager
def borrow_connection(db_engine: Optional[Engine] = None) -> Iterator[sqlite3.Connection]:
    """
    Check out a pooled sqlite3 connection and hand it back on every exit path.
    The pool rolls back anything left open on return.

    Use it inside the endpoint body so checkout and return happen on the
    thread doing the work.
    """
    raw = (db_engine or get_engine()).raw_connection()
    try:
        yield raw.driver_connection
    finally:
        raw.close()
