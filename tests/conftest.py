"""
Pytest configuration and shared fixtures for the developer gateway tests

Provides:
- In-memory SQLite engine and sessions (fresh schema per test)
- Process-local rate windows
- A dict-backed Redis stand-in for the auth cache
- FastAPI TestClient with dependency overrides
- Session tokens for portal and admin callers
"""

import os

# Must be set before the application modules read their settings
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from typing import Generator
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from developer_gateway.database import Base, get_db, get_redis
from developer_gateway import models  # noqa: F401
from developer_gateway.services.developers import DeveloperService
from developer_gateway.services.limiter import UsageLimiter
from developer_gateway.services.rate_window import RateWindow
from developer_gateway.utils.tokens import SessionTokenManager


def _enable_foreign_keys(engine):
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class FakeRedis:
    """Just enough of the redis client for the auth cache."""

    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += 1 if self.store.pop(key, None) is not None else 0
        return removed


@pytest.fixture
def test_db_engine():
    """In-memory SQLite database shared by every session of one test"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _enable_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_db_engine(tmp_path):
    """File-backed SQLite for tests that use several connections at once"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'gateway.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    _enable_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def rate_window():
    return RateWindow()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def developer_service(db_session, rate_window) -> DeveloperService:
    return DeveloperService(db_session, rate_window=rate_window)


@pytest.fixture
def limiter(db_session, rate_window) -> UsageLimiter:
    return UsageLimiter(db_session, rate_window=rate_window)


@pytest.fixture
def created_developer(developer_service):
    """A live developer with default limits"""
    return developer_service.create_developer(name="Test Developer", email="dev@example.com")


@pytest.fixture
def token_manager():
    return SessionTokenManager()


@pytest.fixture
def user_headers(token_manager):
    """Build session headers for a platform user"""

    def _headers(user_id: str = "user-a", role: str = "user", email: str = None):
        token = token_manager.create_token(
            user_id=user_id, email=email or f"{user_id}@example.com", role=role
        )["access_token"]
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def admin_headers(user_headers):
    return user_headers("admin-1", role="admin")


@pytest.fixture
def client(session_factory, rate_window):
    """TestClient with the database, Redis and rate window overridden"""
    from developer_gateway.main import app
    from developer_gateway.api.dependencies import get_rate_window_dependency

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: None
    app.dependency_overrides[get_rate_window_dependency] = lambda: rate_window
    previous_factory = app.state.session_factory
    app.state.session_factory = session_factory

    client = TestClient(app)
    yield client

    app.dependency_overrides.clear()
    app.state.session_factory = previous_factory


@pytest.fixture
def api_headers():
    """Credential headers for the metered routes"""

    def _headers(api_key: str, api_secret: str) -> dict:
        return {"X-API-Key": api_key, "X-API-Secret": api_secret}

    return _headers


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests for API endpoints")
