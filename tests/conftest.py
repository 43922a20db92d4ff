"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from accessgraph.core.audit import DecisionAuditLog
from accessgraph.core.authz import PermissionAggregator, GrantPolicy
from accessgraph.core.rbac.roles import RoleDefaults
from accessgraph.core.relationships import RelationshipStore
from accessgraph.db.base import Base
import accessgraph.db.models  # noqa: F401  (registers tables on Base.metadata)


class FrozenClock:
    """Controllable naive-UTC clock shared by the store and the aggregator."""

    def __init__(self, start: datetime = datetime(2026, 3, 2, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine():
    """In-memory SQLite engine; every session shares one connection."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(
        bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
    )


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def role_defaults():
    return RoleDefaults.builtin()


@pytest.fixture
def store(session_factory, role_defaults, clock):
    return RelationshipStore(session_factory, role_defaults, clock=clock)


@pytest.fixture
def retry_dispatcher():
    return MagicMock(name="retry_dispatcher")


@pytest.fixture
def audit_log(session_factory, retry_dispatcher):
    return DecisionAuditLog(session_factory, retry_dispatcher=retry_dispatcher)


@pytest.fixture
def aggregator(store, audit_log, clock):
    return PermissionAggregator(store, audit_log=audit_log, clock=clock)


@pytest.fixture
def grant_policy(aggregator):
    return GrantPolicy(aggregator)


@pytest.fixture
def client(store, aggregator, session_factory):
    """TestClient with the store and aggregator bound to the test database."""
    from fastapi.testclient import TestClient

    from accessgraph.api import deps
    from accessgraph.api.main import app

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[deps.get_store] = lambda: store
    app.dependency_overrides[deps.get_aggregator] = lambda: aggregator
    app.dependency_overrides[deps.get_db] = _get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
