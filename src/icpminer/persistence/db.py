"""
Database connection and session management.

Provides synchronous database access with connection pooling and
session lifecycle management. Progress writes commit individually, so
sessions are plain sync sessions even when driven from async code.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .models import Base

DEFAULT_DATABASE_URL = "sqlite:///data/icpminer.db"


# =============================================================================
# Global Engine References
# =============================================================================

_sync_engine: Engine | None = None
_sync_session_factory: sessionmaker[Session] | None = None


# =============================================================================
# SQLite Configuration
# =============================================================================


def _configure_sqlite(engine: Engine) -> None:
    """Configure SQLite for better performance and reliability.

    Enables:
    - Foreign key enforcement
    - WAL mode for better concurrency
    - Synchronous mode for durability
    """
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()


def _ensure_sqlite_dir(url: str) -> None:
    if url.startswith("sqlite:///") and url != "sqlite:///:memory:":
        db_path = url.replace("sqlite:///", "")
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)


# =============================================================================
# Engine Creation
# =============================================================================


def get_engine(
    url: str = DEFAULT_DATABASE_URL,
    echo: bool = False,
    pool_size: int = 5,
) -> Engine:
    """Get or create the synchronous database engine.

    The first call wins; later calls return the cached engine regardless
    of arguments until dispose_engines() is called.

    Args:
        url: SQLAlchemy database URL
        echo: Whether to log SQL statements
        pool_size: Connection pool size (ignored for SQLite)
    """
    global _sync_engine, _sync_session_factory

    if _sync_engine is not None:
        return _sync_engine

    _ensure_sqlite_dir(url)

    if url.startswith("sqlite"):
        _sync_engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
        _configure_sqlite(_sync_engine)
    else:
        _sync_engine = create_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=10,
            pool_pre_ping=True,
        )

    _sync_session_factory = sessionmaker(
        bind=_sync_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )

    return _sync_engine


# =============================================================================
# Session Management
# =============================================================================


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get a synchronous database session.

    Usage:
        with get_session() as session:
            session.execute(...)

    Yields:
        SQLAlchemy Session instance, committed on clean exit
    """
    if _sync_session_factory is None:
        get_engine()

    assert _sync_session_factory is not None
    session = _sync_session_factory()

    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_sync_session() -> Session:
    """Get a raw synchronous database session (caller manages lifecycle)."""
    if _sync_session_factory is None:
        get_engine()

    assert _sync_session_factory is not None
    return _sync_session_factory()


# =============================================================================
# Database Initialization
# =============================================================================


def init_db(url: str = DEFAULT_DATABASE_URL, echo: bool = False) -> None:
    """Initialize the database schema.

    Creates all tables if they don't exist. For production use,
    prefer Alembic migrations.
    """
    engine = get_engine(url, echo=echo)
    Base.metadata.create_all(bind=engine)


def drop_db(url: str = DEFAULT_DATABASE_URL) -> None:
    """Drop all database tables.

    WARNING: This will delete all data!
    """
    engine = get_engine(url)
    Base.metadata.drop_all(bind=engine)


# =============================================================================
# Cleanup
# =============================================================================


def dispose_engines() -> None:
    """Dispose of the database engine.

    Should be called on application shutdown.
    """
    global _sync_engine, _sync_session_factory

    if _sync_engine is not None:
        _sync_engine.dispose()
        _sync_engine = None
        _sync_session_factory = None
