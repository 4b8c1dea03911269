"""
Database Persistence Layer - Core Engine.

============================================================
LEDGER DATABASE PERSISTENCE
============================================================

Engine and session management for the ledger.

Requirements:
- SQLAlchemy ORM (PostgreSQL in production, SQLite in tests)
- Explicit transaction management
- One transaction per transfer, follow and order settlement
- Hard failures on persistence errors

============================================================
"""

import logging
from typing import Generator, Optional
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from core.config import DatabaseConfig
from core.exceptions import (
    ConcurrentModificationError,
    LedgerException,
    PersistenceError,
)

logger = logging.getLogger(__name__)

# =============================================================
# DECLARATIVE BASE
# =============================================================

Base = declarative_base()

# =============================================================
# DATABASE ENGINE
# =============================================================

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


def get_database_url() -> str:
    """Get database URL from environment."""
    return DatabaseConfig.from_env().url


def _enable_sqlite_savepoints(engine: Engine) -> None:
    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT.
    # Emit BEGIN ourselves so nested transactions behave.
    @event.listens_for(engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None

    @event.listens_for(engine, "begin")
    def on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_database_engine(
    database_url: Optional[str] = None,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_recycle: int = 1800,
    echo: bool = False,
) -> Engine:
    """
    Create a SQLAlchemy engine.

    Args:
        database_url: SQLAlchemy URL (defaults to DATABASE_URL)
        pool_size: Number of connections to keep in pool
        max_overflow: Max connections beyond pool_size
        pool_recycle: Recycle connections after N seconds
        echo: Log SQL statements

    Returns:
        SQLAlchemy Engine
    """
    database_url = database_url or get_database_url()

    logger.info(f"Creating database engine for: {database_url.split('@')[-1]}")

    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False, "timeout": 15}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=echo, **kwargs)
        _enable_sqlite_savepoints(engine)
    else:
        engine = create_engine(
            database_url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_recycle=pool_recycle,
            pool_pre_ping=True,
            echo=echo,
        )

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Build a session factory bound to an engine."""
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


def configure_database(database_url: Optional[str] = None, echo: bool = False) -> sessionmaker:
    """
    Replace the process-wide engine and session factory.

    Used by the API process and scripts at startup.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()

    config = DatabaseConfig.from_env()
    _engine = create_database_engine(
        database_url or config.url,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        echo=echo or config.echo,
    )
    _SessionFactory = create_session_factory(_engine)
    return _SessionFactory


def get_engine() -> Engine:
    """Get the database engine, creating if necessary."""
    if _engine is None:
        configure_database()
    return _engine


def get_session_factory() -> sessionmaker:
    """Get session factory, creating if necessary."""
    if _SessionFactory is None:
        configure_database()
    return _SessionFactory


# =============================================================
# SESSION MANAGEMENT
# =============================================================


@contextmanager
def transaction_scope(
    session_factory: Optional[sessionmaker] = None,
) -> Generator[Session, None, None]:
    """
    Context manager for explicit transaction boundaries.

    Commits only if no exception occurs.
    Rolls back on ANY exception.

    Ledger exceptions propagate unchanged. A failed optimistic
    version check becomes ConcurrentModificationError, any other
    SQLAlchemy failure becomes PersistenceError.

    Usage:
        with transaction_scope(factory) as session:
            store.debit(session, ...)
            store.credit(session, ...)
            # Commits automatically at end
    """
    factory = session_factory or get_session_factory()
    session = factory()
    try:
        yield session
        session.commit()
    except LedgerException:
        session.rollback()
        raise
    except StaleDataError as e:
        logger.warning(f"Concurrent modification detected, rolling back: {e}")
        session.rollback()
        raise ConcurrentModificationError(
            "Record was modified by a concurrent operation, retry the request",
            cause=e,
        ) from e
    except SQLAlchemyError as e:
        logger.error(f"Database transaction failed, rolling back: {e}", exc_info=True)
        session.rollback()
        raise PersistenceError("Storage failure, operation not applied", cause=e) from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# =============================================================
# DATABASE INITIALIZATION
# =============================================================


def verify_database_connection(engine: Optional[Engine] = None) -> bool:
    """
    Verify database connection is working.

    Raises:
        PersistenceError if connection fails
    """
    engine = engine or get_engine()

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
            logger.info("Database connection verified successfully")
            return True
    except OperationalError as e:
        logger.error(f"Database connection failed: {e}")
        raise PersistenceError(f"Cannot connect to database: {e}", cause=e) from e


def create_all_tables(engine: Optional[Engine] = None) -> None:
    """
    Create all ledger tables.

    Raises:
        PersistenceError if table creation fails
    """
    from . import models  # noqa: F401

    engine = engine or get_engine()

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        logger.error(f"Failed to create database tables: {e}")
        raise PersistenceError(f"Table creation failed: {e}", cause=e) from e


__all__ = [
    "Base",
    "get_database_url",
    "create_database_engine",
    "create_session_factory",
    "configure_database",
    "get_engine",
    "get_session_factory",
    "transaction_scope",
    "verify_database_connection",
    "create_all_tables",
]
