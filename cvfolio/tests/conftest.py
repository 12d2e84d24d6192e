"""
Pytest fixtures for cvfolio API tests.
Uses in-memory SQLite, a temporary local upload directory, mocks Redis,
provides admin and regular users with auth tokens.
"""
import os
import tempfile

import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

# Use in-memory SQLite and a scratch upload dir - set before config/session load
# Must override any .env values
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="cvfolio-uploads-")
os.environ["UPLOAD_URL_PREFIX"] = "/uploads"
os.environ["REDIS_URL"] = ""

from cvfolio.app.db.base import Base
from cvfolio.main import app
from cvfolio.app.core.dependencies import get_db
from cvfolio.app.core.security import create_access_token
from cvfolio.app.models.user import User
from cvfolio.app.services.storage_service import LocalObjectStore

# In-memory SQLite for tests - StaticPool ensures all sessions share same DB
engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Patch the session module so app and background tasks use our test engine
import cvfolio.app.db.session as session_module
session_module.engine = engine
session_module.SessionLocal = TestingSessionLocal


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(scope="function")
def db_session():
    """Create tables and a fresh DB session per test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def admin_user(db_session):
    """Administrator allowed to manage CVs."""
    user = User(id=1, name="Admin", email="admin@example.com", role="admin")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def cv_owner(db_session):
    """Portfolio owner whose CV versions are managed."""
    user = User(id=2, name="Mert", email="mert@example.com", role="user")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def admin_headers(admin_user):
    """Bearer token for the admin user."""
    token = create_access_token(data={"sub": str(admin_user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers(cv_owner):
    """Bearer token for a non-admin user."""
    token = create_access_token(data={"sub": str(cv_owner.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def store(tmp_path):
    """Local object store in a per-test directory."""
    return LocalObjectStore(root=tmp_path / "blobs", url_prefix="/uploads")


@pytest.fixture
def client(db_session, admin_user, cv_owner):
    """TestClient with DB, admin and CV owner pre-seeded."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def mock_redis():
    """Mock Redis cache: get returns None (cache miss), set/delete no-op. Skip connect."""
    with patch("cvfolio.app.utils.cache.get", new_callable=AsyncMock, return_value=None), \
         patch("cvfolio.app.utils.cache.set", new_callable=AsyncMock), \
         patch("cvfolio.app.utils.cache.delete", new_callable=AsyncMock), \
         patch("cvfolio.app.utils.cache.connect", new_callable=AsyncMock):
        yield
