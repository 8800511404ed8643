"""
Portfolio API - Test Configuration and Fixtures
"""
import os

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-for-testing-only")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from auth import AuthContext
from cache import QueryCache
from main import app, get_backend, get_cache, get_live_profile
from notifications import Notifier
from repositories import SITE_OWNER_ID
from schemas import Identity
from tests.fakes import InMemoryBackend, make_token

OWNER_PASSWORD = "correct-horse-battery"


@pytest.fixture
def owner() -> Identity:
    return Identity(id="owner-1", email="owner@example.com")


@pytest.fixture
def site_owner() -> Identity:
    return Identity(id=SITE_OWNER_ID, email="site@example.com")


@pytest.fixture
def backend(owner) -> InMemoryBackend:
    fake = InMemoryBackend()
    fake.add_user(owner, OWNER_PASSWORD)
    return fake


@pytest.fixture
def cache() -> QueryCache:
    return QueryCache(ttl=60)


@pytest.fixture
def notifier() -> Notifier:
    return Notifier()


@pytest.fixture
def token(owner) -> str:
    return make_token(owner)


@pytest.fixture
def signed_in(backend, token) -> AuthContext:
    context = AuthContext(backend)
    context.restore(token)
    return context


@pytest.fixture
def anonymous(backend) -> AuthContext:
    context = AuthContext(backend)
    context.restore(None)
    return context


@pytest.fixture
def auth_headers(token) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(backend, cache):
    app.dependency_overrides[get_backend] = lambda: backend
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_live_profile] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()
