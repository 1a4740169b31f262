"""Test fixtures — a fresh in-memory database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own in-memory SQLite engine (aiosqlite). StaticPool
   keeps a single connection, so every session in the test sees the same
   database, and it vanishes when the engine is disposed.
2. Tables are created from Base.metadata — no migrations needed.
3. The app is built with create_app(settings, engine=...), so nothing
   global has to be patched. Collaborators that talk to the outside world
   (feature service, OAuth providers) are swapped with
   app.dependency_overrides.
"""

from typing import Optional

import httpx
import pytest
import pytest_asyncio
from fastapi.responses import RedirectResponse
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from authgate.auth.dependencies import get_feature_gate, get_oauth_providers
from authgate.config import Settings
from authgate.db.engine import build_session_factory
from authgate.db.models import Base
from authgate.main import create_app
from authgate.services.feature_gate import FeatureGateClient
from authgate.services.roles import RoleDirectory

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"
FRONTEND_URL = "http://frontend.test"


@pytest.fixture
def settings():
    return Settings(
        database_url=TEST_DB_URL,
        jwt_secret="test-secret",
        bcrypt_rounds=4,
        frontend_url=FRONTEND_URL,
        callback_url="http://auth.test",
        feature_service_url="http://features.test",
    )


@pytest_asyncio.fixture()
async def engine():
    engine = create_async_engine(
        TEST_DB_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture()
async def roles(session_factory):
    """Seed the default roles, as `authgate seed-roles` would."""
    async with session_factory() as session:
        await RoleDirectory(session).seed()


@pytest_asyncio.fixture()
async def db_session(session_factory, roles):
    """Session on a database with roles seeded."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def unseeded_session(session_factory):
    """Session on a database where nobody ran seed-roles."""
    async with session_factory() as session:
        yield session


class FakeOAuthProviders:
    """Stands in for the Authlib registry: no network, canned callbacks."""

    def __init__(self, configured=("google", "github")):
        self.configured = set(configured)
        self.callbacks = {}
        self.errors = {}

    def is_configured(self, name: str) -> bool:
        return name in self.configured

    async def authorize_redirect(self, request, name: str):
        return RedirectResponse(f"https://{name}.test/authorize", status_code=302)

    async def fetch_callback(self, request, name: str):
        if name in self.errors:
            raise self.errors[name]
        return self.callbacks[name]


def feature_gate(enabled: dict[str, bool], status_code: int = 200) -> FeatureGateClient:
    """FeatureGateClient backed by an httpx MockTransport."""

    def handler(request: httpx.Request) -> httpx.Response:
        feature = request.url.path.rsplit("/", 1)[-1]
        if feature not in enabled:
            return httpx.Response(404, json={"message": "Feature not found"})
        return httpx.Response(status_code, json={"enabled": enabled[feature]})

    return FeatureGateClient("http://features.test", transport=httpx.MockTransport(handler))


@pytest.fixture
def oauth_providers():
    return FakeOAuthProviders()


@pytest.fixture
def app(settings, engine, oauth_providers):
    app = create_app(settings, engine=engine)
    app.dependency_overrides[get_oauth_providers] = lambda: oauth_providers
    app.dependency_overrides[get_feature_gate] = lambda: feature_gate(
        {"google-auth": True, "github-auth": False, "email-auth": True}
    )
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def client(app, roles):
    """HTTP client against the app, roles seeded."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture()
async def unseeded_client(app):
    """HTTP client against a database missing its seed data."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def auth_header(token: Optional[str]) -> dict:
    return {"Authorization": f"Bearer {token}"}
