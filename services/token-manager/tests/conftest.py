# Test configuration
import os
import sys
from pathlib import Path
from unittest.mock import patch

# Add parent directory (token-manager) to sys.path so 'app' can be imported
service_dir = Path(__file__).parent.parent
sys.path.insert(0, str(service_dir))

# Set test environment variables BEFORE importing app modules
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STORAGE_BACKEND"] = "sql"
os.environ["USER_CREDENTIALS"] = "admin:admin123,alice:alicepw,bob:bobpw"
os.environ["PASSWORD_HASH_ROUNDS"] = "4"  # Lower rounds for faster tests
os.environ["RATE_LIMIT_MAX_REQUESTS"] = "10000"
os.environ["AUTH_RATE_LIMIT_MAX_REQUESTS"] = "50"
os.environ["AUTH_BASE_URL"] = "https://auth.test"
os.environ["APP_BASE_URL"] = "https://app.test"
os.environ["SHARE_API_BASE_URL"] = "https://pool.test"
os.environ["PORTAL_API_BASE_URL"] = "https://portal.test/api/v1"
os.environ["LOG_LEVEL"] = "WARNING"

from typing import Any, Callable, Dict, List, Tuple, Union  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.app import app  # noqa: E402
from app.database import get_db  # noqa: E402
from app.dependencies import (  # noqa: E402
    get_app_session_cache,
    get_augment_client,
    get_portal_client,
    get_share_pool_client,
)
from app.infrastructure.augment_client import AugmentClient  # noqa: E402
from app.infrastructure.portal_client import PortalClient  # noqa: E402
from app.infrastructure.share_pool_client import SharePoolClient  # noqa: E402
from app.models import Base  # noqa: E402
from app.rate_limiter import api_rate_limiter, auth_rate_limiter  # noqa: E402
from app.services.credit_service import AppSessionCache  # noqa: E402

# Create in-memory SQLite database for testing
engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Handler = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class FakeUpstream:
    """
    Routes outbound requests to canned responses.

    Routes are keyed by (method, host, path); unknown routes answer 404.
    Every request is recorded in ``calls``.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str, str], Handler] = {}
        self.calls: List[httpx.Request] = []

    def add(self, method: str, url: str, handler: Handler) -> None:
        parsed = httpx.URL(url)
        self.routes[(method.upper(), parsed.host, parsed.path)] = handler

    def requests_to(self, url: str) -> List[httpx.Request]:
        parsed = httpx.URL(url)
        return [r for r in self.calls if r.url.host == parsed.host and r.url.path == parsed.path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        route = self.routes.get((request.method, request.url.host, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": "not mocked"})
        if callable(route):
            return route(request)
        return route

    def async_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def upstream():
    """Fake partner APIs shared by every outbound client."""
    return FakeUpstream()


@pytest.fixture
def augment_client(upstream):
    return AugmentClient(http_client=upstream.async_client())


@pytest.fixture
def portal_client(upstream):
    return PortalClient(http_client=upstream.async_client())


@pytest.fixture
def share_pool_client(upstream):
    return SharePoolClient(http_client=upstream.async_client())


@pytest.fixture
def app_session_cache():
    return AppSessionCache(ttl_seconds=60)


@pytest.fixture(autouse=True)
def reset_rate_limiters():
    """Rate limiter state is module level; start each test clean."""
    auth_rate_limiter.reset()
    api_rate_limiter.reset()
    yield
    auth_rate_limiter.reset()
    api_rate_limiter.reset()


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session, augment_client, portal_client, share_pool_client, app_session_cache):
    """Create a test client with database and partner client overrides"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    # Mock init_db to prevent creating tables on the module engine
    with patch("app.app.init_db"):
        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_augment_client] = lambda: augment_client
        app.dependency_overrides[get_portal_client] = lambda: portal_client
        app.dependency_overrides[get_share_pool_client] = lambda: share_pool_client
        app.dependency_overrides[get_app_session_cache] = lambda: app_session_cache
        with TestClient(app) as test_client:
            yield test_client
        app.dependency_overrides.clear()


def _login(client: TestClient, username: str, password: str) -> Dict[str, Any]:
    response = client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["data"]


@pytest.fixture
def login_as(client):
    """Log in and return the login payload (token, user, expiresAt)"""
    return lambda username, password: _login(client, username, password)


@pytest.fixture
def admin_headers(client):
    """Bearer headers for the admin account"""
    data = _login(client, "admin", "admin123")
    return {"Authorization": f"Bearer {data['token']}"}


@pytest.fixture
def alice_headers(client):
    """Bearer headers for a regular user"""
    data = _login(client, "alice", "alicepw")
    return {"Authorization": f"Bearer {data['token']}"}


@pytest.fixture
def bob_headers(client):
    """Bearer headers for a second regular user"""
    data = _login(client, "bob", "bobpw")
    return {"Authorization": f"Bearer {data['token']}"}


@pytest.fixture
def sample_token_data():
    """Sample token payload"""
    return {
        "tenant_url": "https://d5.api.augmentcode.com/",
        "access_token": "tok_1234567890abcdef",
        "portal_url": "https://portal.withorb.com/view?token=portal-abc",
        "email_note": "alice@example.com",
    }
