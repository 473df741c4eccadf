"""Database session and engine setup.

This module provides:
- SQLAlchemy Engine configured from DATABASE_URL (defaults to SQLite ./data/sitekit.db)
- SessionLocal factory
- init_db() to create tables and ensure SQLite folders/PRAGMAs
- get_db() FastAPI-style dependency generator
- reconfigure_database() to swap the engine (tests, CLI --database)
"""
from __future__ import annotations

import atexit
import logging
import pathlib
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from sitekit.config import get_config
from sitekit.db.models import Base

logger = logging.getLogger(__name__)

# --------------------------------------------------------------------------------------
# Configuration
# --------------------------------------------------------------------------------------
DATABASE_URL: str = get_config().database_url
ECHO_SQL: bool = get_config().sql_echo


def _ensure_sqlite_dir(url: str) -> None:
    if url.startswith("sqlite:///") and ":memory:" not in url:
        db_path = url.replace("sqlite:///", "", 1)
        pathlib.Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


def _make_engine(url: str, *, echo: bool) -> Engine:
    is_sqlite = url.startswith("sqlite")
    engine_kwargs = {
        "future": True,
        "echo": echo,
        "pool_pre_ping": True,
    }
    if is_sqlite:
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        _ensure_sqlite_dir(url)

    eng = create_engine(url, **engine_kwargs)

    if is_sqlite:

        @event.listens_for(eng, "connect")
        def _set_sqlite_pragma(dbapi_connection, connection_record):  # type: ignore[unused-ignore]
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA foreign_keys=ON")
            finally:
                cursor.close()

    return eng


engine = _make_engine(DATABASE_URL, echo=ECHO_SQL)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)


def _dispose_current_engine() -> None:
    """Dispose the active engine so pooled connections close at shutdown/reconfig."""
    global engine
    try:
        engine.dispose()
    except Exception:  # pragma: no cover - already disposed
        logger.debug("engine dispose failed", exc_info=True)


atexit.register(_dispose_current_engine)


def reconfigure_database(url: Optional[str] = None, *, echo: Optional[bool] = None) -> None:
    """Rebuild the global engine/session using a new URL or echo flag."""
    global engine, DATABASE_URL, ECHO_SQL
    if url is not None:
        DATABASE_URL = url
    if echo is not None:
        ECHO_SQL = bool(echo)
    _dispose_current_engine()
    engine = _make_engine(DATABASE_URL, echo=ECHO_SQL)
    SessionLocal.configure(bind=engine)


def init_db() -> None:
    """Create database tables if they don't exist.

    Alembic owns the schema in real deployments; this supports local bootstrap and tests.
    """
    _ensure_sqlite_dir(DATABASE_URL)
    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized: %s", DATABASE_URL)


def get_db() -> Generator[Session, None, None]:
    """Yield a SQLAlchemy session and ensure close afterwards (FastAPI dependency)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def ping_db() -> bool:
    """Lightweight connectivity check (SELECT 1). Returns True if OK, False otherwise."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.exception("DB ping failed")
        return False
