"""
Verso Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v

Database tests use an in-memory SQLite engine shared across threads
(StaticPool), with foreign keys enforced and the full schema created.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


# ---------------------------------------------------------------------------
# Keep unit tests off real Redis and Postgres
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_globals():
    """Reset global singletons between tests."""
    import verso.engine.config as cfg_mod
    import verso.engine.logging as log_mod

    cfg_mod.reset_config()
    yield
    cfg_mod.reset_config()
    log_mod.shutdown_logging()


@pytest.fixture
def db_engine():
    from verso.db.base import Base
    from verso.db.session import enable_sqlite_foreign_keys

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine)


@pytest.fixture
def versioning_config():
    from verso.engine.config import VersioningConfig

    return VersioningConfig()


@pytest.fixture
def guard(session_factory):
    from verso.security.permissions import CollaborationGuard

    return CollaborationGuard(session_factory)


@pytest.fixture
def changelog(session_factory):
    from verso.versioning.changelog import ChangeLog

    return ChangeLog(session_factory)


@pytest.fixture
def locks():
    from verso.versioning.locks import ArtifactLocks

    return ArtifactLocks()


@pytest.fixture
def store(session_factory, guard, changelog, versioning_config, locks):
    from verso.versioning.store import VersionStore

    return VersionStore(
        session_factory, guard, changelog=changelog, config=versioning_config, locks=locks
    )


@pytest.fixture
def refs(session_factory, guard, changelog, locks):
    from verso.versioning.refs import BranchTagRegistry

    return BranchTagRegistry(session_factory, guard, changelog=changelog, locks=locks)


@pytest.fixture
def api(store, refs, guard):
    from verso.api.handlers import ArtifactAPI

    return ArtifactAPI(store, refs, guard=guard)


@pytest.fixture
def first_version(store):
    """An artifact owned by alice with version 1 = "A"."""
    return store.create_artifact("Doc", "A", "alice")


@pytest.fixture
def artifact_id(first_version):
    return first_version.artifact_id


@pytest.fixture
def mock_redis():
    """Return a mock Redis client."""
    client = MagicMock()
    client.ping.return_value = True
    client.get.return_value = None
    client.set.return_value = True
    client.delete.return_value = 1
    client.scan_iter.return_value = iter([])
    return client
