"""
Shared test fixtures for the Warden test suite.

Every test gets a fresh app wired to its own in-memory aiosqlite database.
bcrypt runs at cost 4 to keep the suite fast.
"""

import os
import sys
from collections.abc import AsyncGenerator, Awaitable, Callable

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key-0123456789abcdef0123456789abcdef"

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from warden.core.config import SecurityConfig, Settings
from warden.core.roles import Role
from warden.db.base import Base
from warden.db.directory import SqlUserDirectory
from warden.main import create_app
from warden.models.user import User

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789abcdef"
DEFAULT_PASSWORD = "password123"


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        SECRET_KEY=TEST_SECRET,
        BCRYPT_ROUNDS=4,
        RATE_LIMIT_ENABLED=False,
        CORS_ORIGINS=["*"],
    )


@pytest.fixture
def security_config(test_settings: Settings) -> SecurityConfig:
    return test_settings.security_config()


@pytest.fixture
async def app(test_settings: Settings) -> AsyncGenerator[FastAPI, None]:
    """Create the app and its tables; drop the engine afterwards."""
    application = create_app(test_settings)
    async with application.state.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield application

    await application.state.engine.dispose()


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def db_session(app: FastAPI) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with app.state.session_factory() as session:
        yield session


# ── Account helpers ─────────────────────────────────────────────────
@pytest.fixture
def register_user(async_client: AsyncClient) -> Callable[..., Awaitable[dict]]:
    """POST /users and return the created record, asserting success."""

    async def _register(
        username: str = "alice",
        password: str = DEFAULT_PASSWORD,
        display_name: str = "Alice Example",
        **extra,
    ) -> dict:
        resp = await async_client.post(
            "/api/v1/users",
            json={
                "username": username,
                "display_name": display_name,
                "password": password,
                **extra,
            },
        )
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _register


@pytest.fixture
def login(async_client: AsyncClient) -> Callable[..., Awaitable[dict]]:
    """Log in and return ``Authorization`` headers for the issued token."""

    async def _login(username: str = "alice", password: str = DEFAULT_PASSWORD) -> dict:
        resp = await async_client.post(
            "/api/v1/auth/login", data={"username": username, "password": password}
        )
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}

    return _login


@pytest.fixture
def create_admin(app: FastAPI) -> Callable[..., Awaitable[str]]:
    """Insert an ADMIN account straight into the store and return its id.

    Registration over HTTP only grants the default role, the same way
    ``seed_first_admin`` bootstraps the first administrator.
    """

    async def _create(username: str = "root", password: str = DEFAULT_PASSWORD) -> str:
        async with app.state.session_factory() as session:
            admin = await SqlUserDirectory(session).create(
                User(
                    username=username,
                    display_name="Administrator",
                    password_hash=await app.state.vault.hash_async(password),
                    role=Role.ADMIN.value,
                )
            )
            return admin.id

    return _create
