"""Pytest configuration and fixtures."""

import json
import os

# Settings are read at import time; keep tests off the real database and fast on bcrypt
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ENVIRONMENT", "test")

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from deskauth.main import app
from deskauth.database import Base, get_db
from deskauth.models.user import User
from deskauth.services.external_identity import ExternalIdentityClient, get_external_identity_client
from deskauth.services.session_store import SessionAuxStore, get_session_store
from deskauth.services.user_store import UserStore
from deskauth.utils.timezone import utcnow


# Create test database
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

IDENTITY_BASE_URL = "https://identity.test/api"


class FakeIdentityServer:
    """In-process stand-in for the external identity API (httpx.MockTransport handler)."""

    def __init__(self):
        self.requests = []
        self.login_status = 200
        self.register_status = 200
        self.sync_status = 200
        self.failure = None  # callable(request) -> exception to raise

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        self.requests.append((request.url.path, body))

        if self.failure is not None:
            raise self.failure(request)

        path = request.url.path
        if path.endswith("/auth/login"):
            status, token = self.login_status, "ext-login-token"
        elif path.endswith("/auth/register"):
            status, token = self.register_status, "ext-register-token"
        elif path.endswith("/auth/sync-password"):
            return httpx.Response(self.sync_status, json={"ok": self.sync_status < 300})
        else:
            return httpx.Response(404, json={"error": "not found"})

        if status >= 300:
            return httpx.Response(status, json={"error": "request failed"})
        return httpx.Response(status, json={"data": {"token": token}})

    @property
    def paths(self):
        return [path for path, _ in self.requests]

    def bodies(self, suffix):
        return [body for path, body in self.requests if path.endswith(suffix)]


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def identity_server():
    return FakeIdentityServer()


@pytest.fixture
def identity_client(identity_server):
    """External identity client wired to the fake server."""
    return ExternalIdentityClient(
        base_url=IDENTITY_BASE_URL,
        timeout=1.0,
        enabled=True,
        transport=httpx.MockTransport(identity_server.handler)
    )


@pytest.fixture
def session_store():
    return SessionAuxStore()


@pytest.fixture(scope="function")
def client(db, identity_client, session_store):
    """Create a test client with overridden dependencies."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_external_identity_client] = lambda: identity_client
    app.dependency_overrides[get_session_store] = lambda: session_store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def create_user(db):
    """Factory for confirmed, active users with a known password."""
    counter = {"n": 0}

    def _create_user(email="a@x.com", password="secret", **overrides):
        counter["n"] += 1
        fields = {
            "id": f"user-{counter['n']}",
            "email": email,
            "name": email.split("@")[0].title(),
            "is_active": True,
            "confirmed_at": utcnow(),
            "mfa_enabled": False,
            "failed_login_attempts": 0,
            "sign_in_count": 0,
            "hashed_password": UserStore.hash_password(password),
        }
        fields.update(overrides)
        user = User(**fields)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _create_user
