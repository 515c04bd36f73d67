"""
Verso Database Session Management.

Single entry point for DB initialisation plus the transactional context
manager every mutating operation runs inside.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator, Optional

import sqlalchemy
from sqlalchemy.orm import Session, sessionmaker

from verso.db.base import Base, engine_registry
from verso.engine.config import DatabaseConfig

ENGINE_NAME = "verso"


def init_db(
    config: Optional[DatabaseConfig] = None,
    db_url: Optional[str] = None,
    create_tables: bool = False,
) -> sessionmaker:
    """
    Register the engine, optionally create tables, and return a sessionmaker.

    1. Registers engine "verso" in the global EngineRegistry.
    2. For SQLite, turns on foreign-key enforcement for every connection.
    3. Optionally runs Base.metadata.create_all() (dev / `verso init`).

    Args:
        config:        DatabaseConfig from verso.yaml (defaults if None).
        db_url:        Overrides config.url.
        create_tables: Create missing tables.
    """
    config = config or DatabaseConfig()
    url = db_url or config.url

    engine = engine_registry.register(
        ENGINE_NAME,
        url,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout,
        pool_recycle=config.pool_recycle,
        pool_pre_ping=config.pool_pre_ping,
        echo=config.echo,
    )

    if url.startswith("sqlite"):
        enable_sqlite_foreign_keys(engine)

    if create_tables:
        Base.metadata.create_all(engine)

    return engine_registry.get_session_factory(ENGINE_NAME)


def enable_sqlite_foreign_keys(engine: sqlalchemy.Engine) -> None:
    @sqlalchemy.event.listens_for(engine, "connect")
    def _set_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Transaction scope with auto-commit/rollback.

    Usage:
        with session_scope(factory) as session:
            session.add(row)
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def close_all() -> None:
    """Dispose all engines. Used during shutdown."""
    engine_registry.dispose()
