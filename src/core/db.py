"""Database connection and session management."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Generator, List

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from core.config import get_settings
from core.logging_config import get_logger

LOGGER = get_logger(__name__)
SETTINGS = get_settings()

# Tables that MUST exist for the system to function
REQUIRED_TABLES = ["agent", "property", "inquiry", "deal", "property_view"]


def _build_engine(database_url: str) -> Engine:
    """Create an engine with pooling appropriate for the backend."""
    if database_url.startswith("sqlite"):
        in_memory = ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///")
        sqlite_engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            # In-memory databases live on a single connection
            poolclass=StaticPool if in_memory else NullPool,
        )

        @event.listens_for(sqlite_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            if not in_memory:
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA busy_timeout=30000")
            cursor.close()

        return sqlite_engine

    return create_engine(
        database_url,
        pool_size=SETTINGS.db_pool_size,
        max_overflow=SETTINGS.db_max_overflow,
        pool_timeout=SETTINGS.db_pool_timeout,
        pool_pre_ping=True,
    )


engine = _build_engine(SETTINGS.database_url)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """
    Context manager for a unit of work.

    Everything done through the yielded session is committed together
    when the block exits normally and rolled back if it raises.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def get_readonly_session() -> Generator[Session, None, None]:
    """Context manager for read-only database sessions."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def init_db(bind: Engine | None = None) -> Dict[str, Any]:
    """
    Create any missing tables.

    Args:
        bind: Engine to initialize. Defaults to the application engine.

    Returns:
        Dict with initialization results.
    """
    from . import models  # noqa: F401

    target = bind or engine
    result: Dict[str, Any] = {
        "status": "success",
        "tables_created": [],
        "tables_existing": [],
    }

    try:
        existing_tables = set(inspect(target).get_table_names())
        Base.metadata.create_all(bind=target)
        new_tables = set(inspect(target).get_table_names())
        result["tables_created"] = sorted(new_tables - existing_tables)
        result["tables_existing"] = sorted(existing_tables)
        LOGGER.info(
            "Database initialized",
            extra={"extra_data": {"created": result["tables_created"]}},
        )
    except Exception as e:
        result["status"] = "error"
        result["error"] = str(e)
        LOGGER.error(f"init_db failed: {e}", exc_info=True)

    return result


def _missing_tables(bind: Engine) -> List[str]:
    existing = inspect(bind).get_table_names()
    return [t for t in REQUIRED_TABLES if t not in existing]


def validate_database(bind: Engine | None = None) -> Dict[str, Any]:
    """
    Validate database connection and required tables.

    Call this at application startup to ensure the database is ready.
    """
    target = bind or engine
    result: Dict[str, Any] = {
        "status": "ok",
        "database_url": target.url.render_as_string(hide_password=True),
        "tables_missing": [],
        "errors": [],
    }

    try:
        with target.connect() as conn:
            conn.execute(text("SELECT 1"))

        missing = _missing_tables(target)
        result["tables_missing"] = missing
        if missing:
            result["status"] = "missing_tables"
            result["errors"].append(f"Missing required tables: {missing}")
    except Exception as e:
        result["status"] = "error"
        result["errors"].append(str(e))

    return result


class SessionContextManager:
    """Context manager wrapper for database sessions in background tasks."""

    def __init__(self, factory: sessionmaker = SessionLocal):
        self.factory = factory
        self.session: Session | None = None

    def __enter__(self) -> Session:
        self.session = self.factory()
        return self.session

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            if exc_type is None:
                try:
                    self.session.commit()
                except Exception:
                    self.session.rollback()
                    raise
            else:
                self.session.rollback()
            self.session.close()
        return False


def get_session_factory():
    """
    Return a session factory for background tasks.

    Background work (such as recording a property view after the response
    has been prepared) runs outside the request's session and needs its own.

    Usage:
        session_factory = get_session_factory()
        with session_factory() as session:
            ...  # committed on success, rolled back on error
    """
    return SessionContextManager
