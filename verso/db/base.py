"""
Verso Database Base — SQLAlchemy declarative base, mixins, and engine registry.

Provides:
- Base: SQLAlchemy declarative base for all engine models
- TimestampMixin: created_at, updated_at
- EngineRegistry: named engines + session factories
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime, Engine, create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all Verso models."""
    pass


class TimestampMixin:
    """Adds created_at and updated_at columns."""
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class EngineRegistry:
    """
    Registry of named SQLAlchemy engines.

    Usage:
        registry = EngineRegistry()
        registry.register("verso", "postgresql://...")
        session = registry.get_session("verso")
    """

    def __init__(self):
        self._engines: Dict[str, Engine] = {}
        self._session_factories: Dict[str, sessionmaker] = {}

    def register(self, name: str, url: str, **kwargs: Any) -> Engine:
        """
        Register a new database engine. Pool arguments only apply to
        pooled dialects; SQLite URLs are created without them.
        """
        if url.startswith("sqlite"):
            for key in ("pool_size", "max_overflow", "pool_timeout"):
                kwargs.pop(key, None)
        engine = create_engine(url, **kwargs)
        self.add(name, engine)
        return engine

    def add(self, name: str, engine: Engine) -> None:
        """Register an already-built engine (tests, embedded use)."""
        self._engines[name] = engine
        self._session_factories[name] = sessionmaker(bind=engine)

    def get(self, name: str) -> Engine:
        if name not in self._engines:
            raise KeyError(f"Engine '{name}' not registered. Available: {list(self._engines.keys())}")
        return self._engines[name]

    def get_session_factory(self, name: str = "verso") -> sessionmaker:
        if name not in self._session_factories:
            raise KeyError(
                f"Session factory '{name}' not found. Available: {list(self._session_factories.keys())}"
            )
        return self._session_factories[name]

    def get_session(self, name: str = "verso") -> Session:
        return self.get_session_factory(name)()

    def dispose(self, name: Optional[str] = None) -> None:
        """Dispose one or all engines (close connection pools)."""
        if name:
            engine = self._engines.pop(name, None)
            self._session_factories.pop(name, None)
            if engine is not None:
                engine.dispose()
            return
        for engine in self._engines.values():
            engine.dispose()
        self._engines.clear()
        self._session_factories.clear()

    @property
    def registered_names(self) -> list:
        return list(self._engines.keys())

    def health_check(self, name: str) -> bool:
        """Check if an engine can connect."""
        try:
            with self.get(name).connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except (KeyError, SQLAlchemyError):
            return False


# Global engine registry singleton
engine_registry = EngineRegistry()
