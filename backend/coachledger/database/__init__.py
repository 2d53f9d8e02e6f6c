"""
Database engine, session factory, and metadata shared across the engine.
"""

from __future__ import annotations

import logging
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from coachledger.core.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for every ledger and booking table."""


def _configure_sqlite_connection(dbapi_connection: Any, connection_record: Any) -> None:
    # SQLAlchemy emits BEGIN itself so SAVEPOINT works under pysqlite.
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_sqlite_transaction(conn: Any) -> None:
    # SQLite has no row locks: writers take the database lock at BEGIN and
    # queue on the busy timeout instead of failing on a lock upgrade.
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str | None = None, **kwargs: Any) -> Engine:
    """Create an engine for the given URL; SQLite engines get FK enforcement."""
    db_url = url or settings.database_url
    kwargs.setdefault("echo", settings.database_echo)
    kwargs.setdefault("future", True)
    if db_url.startswith("sqlite"):
        connect_args = dict(kwargs.pop("connect_args", {}) or {})
        connect_args.setdefault("check_same_thread", False)
        kwargs["connect_args"] = connect_args
    else:
        kwargs.setdefault("pool_pre_ping", True)

    new_engine = create_engine(db_url, **kwargs)
    if new_engine.dialect.name == "sqlite":
        event.listen(new_engine, "connect", _configure_sqlite_connection)
        event.listen(new_engine, "begin", _begin_sqlite_transaction)
    logger.debug("Database engine created for dialect %s", new_engine.dialect.name)
    return new_engine


engine: Engine = build_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create all tables. Intended for local development and tests."""
    # Import models so Base.metadata is populated.
    import coachledger.models  # noqa: F401

    Base.metadata.create_all(bind or engine)
    logger.info("Database schema created")


__all__ = ["Base", "SessionLocal", "build_engine", "engine", "get_db", "init_db"]
