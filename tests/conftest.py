"""
Shared test fixtures.

Environment variables must be set before any gatehouse import: settings are
read once at import time and the bcrypt context is built from them.
"""

import os

os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["DATABASE_URL"] = "sqlite:///./gatehouse-test.db"

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gatehouse.api.main import app
from gatehouse.config import settings
from gatehouse.db import Base, create_engine_for
from gatehouse.db import models  # noqa: F401
from gatehouse.services import UserService

ADMIN_PASSWORD = "Admin#Pass1"
USER_PASSWORD = "User#Pass1"


@pytest.fixture
def database_path(tmp_path):
    """Per-test SQLite file shared by the test sessions and the app."""
    return tmp_path / "test.db"


@pytest_asyncio.fixture
async def engine(database_path):
    """Engine over an empty schema."""
    engine = create_engine_for(f"sqlite+aiosqlite:///{database_path}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    """A session for the test body. Tests commit where another session must see the writes."""
    async with session_factory() as session:
        yield session


async def create_user(
    session_factory,
    email: str,
    password: str = USER_PASSWORD,
    roles: set[str] | None = None,
    **profile,
):
    """Register a user in its own committed transaction."""
    async with session_factory() as session:
        user = await UserService(session).register(
            email=email, password=password, roles=roles, **profile
        )
        await session.commit()
        return user


@pytest.fixture
def client(database_path, monkeypatch, engine):
    """TestClient whose app talks to the same per-test database file."""
    monkeypatch.setattr(settings, "database_url", f"sqlite:///{database_path}")
    # The app builds its engine on startup and drops it on shutdown
    with TestClient(app) as test_client:
        yield test_client


@pytest_asyncio.fixture
async def admin(session_factory):
    return await create_user(
        session_factory,
        "admin@example.com",
        password=ADMIN_PASSWORD,
        roles={settings.default_role, settings.admin_role},
    )


@pytest_asyncio.fixture
async def alice(session_factory):
    return await create_user(
        session_factory, "alice@example.com", first_name="Alice", last_name="Archer"
    )


@pytest_asyncio.fixture
async def bob(session_factory):
    return await create_user(
        session_factory, "bob@example.com", first_name="Bob", last_name="Baker"
    )


def refresh_cookie(response) -> tuple[str, str]:
    """Return (value, attributes) of the refresh cookie set by ``response``."""
    prefix = f"{settings.refresh_cookie_name}="
    for header in response.headers.get_list("set-cookie"):
        if header.startswith(prefix):
            value, _, attributes = header[len(prefix):].partition(";")
            return value.strip('"'), attributes
    raise AssertionError("response did not set the refresh cookie")


def login(client: TestClient, email: str, password: str) -> tuple[str, str]:
    """Log in and return (access token, refresh token)."""
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["token"], refresh_cookie(response)[0]


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def with_refresh_cookie(token: str) -> dict[str, str]:
    return {"Cookie": f"{settings.refresh_cookie_name}={token}"}
