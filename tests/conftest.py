"""
Pytest fixtures shared by the DarkTrack test-suite.
"""

import os
import uuid
from datetime import datetime, timezone

# Set test environment before importing the app
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-12345"
os.environ["ENCRYPTION_KEY"] = "test-encryption-key-12345"
for _name in ("REDIS_URL", "HIBP_API_KEY", "OPENAI_API_KEY"):
    os.environ.pop(_name, None)

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from darktrack.core.crypto import CryptoService
from darktrack.db import Base
from darktrack.models import scan as scan_models  # noqa: F401
from darktrack.models.user import User
from darktrack.services.scan_repository import SqlScanRepository

from fakes import FakeBreachProvider, FakeNarrativeClient, InMemoryScanRepository


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def crypto():
    return CryptoService("test-encryption-key-12345")


# ===========================================
# Database Fixtures
# ===========================================

@pytest.fixture
def db_engine():
    """In-memory SQLite shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def user(db_session):
    user = User(id=str(uuid.uuid4()), email="owner@example.com", first_name="Test")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def repository(db_session, crypto):
    return SqlScanRepository(db_session, crypto)


# ===========================================
# Pipeline Fixtures
# ===========================================

@pytest.fixture
def now():
    return datetime(2026, 10, 17, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(now):
    return FrozenClock(now)


@pytest.fixture
def memory_repository():
    return InMemoryScanRepository()


@pytest.fixture
def breach_provider():
    return FakeBreachProvider()


@pytest.fixture
def narrative_client():
    return FakeNarrativeClient()
