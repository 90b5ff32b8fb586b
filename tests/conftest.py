"""Shared test fixtures — async SQLite DB, gateway, coordinator + test client."""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("PROFILE_INITIAL_DELAY", "0")
os.environ.setdefault("PROFILE_RETRY_DELAY", "0")

from collections.abc import AsyncGenerator  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

# Import all models so metadata is populated
import botrelay.models  # noqa: E402, F401
from botrelay.api.deps import get_registry  # noqa: E402
from botrelay.core.config import Settings  # noqa: E402
from botrelay.main import app  # noqa: E402
from botrelay.services.coordinator import SynchronizationCoordinator  # noqa: E402
from botrelay.services.gateway import PersistenceGateway  # noqa: E402
from botrelay.services.identity import LocalIdentityProvider  # noqa: E402
from botrelay.services.workspace import WorkspaceRegistry  # noqa: E402


@pytest.fixture
async def engine(tmp_path):
    # File-backed so concurrent persistence tasks get their own connections
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'botrelay.db'}", echo=False)

    @event.listens_for(eng.sync_engine, "connect")
    def _enforce_foreign_keys(dbapi_connection, _record):
        # SQLite leaves FK checks off unless asked, Postgres always enforces them
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the test SQLite engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        jwt_secret_key="test-secret-key",
        profile_initial_delay=0,
        profile_retry_delay=0,
    )


@pytest.fixture
def gateway(session_factory) -> PersistenceGateway:
    return PersistenceGateway(session_factory)


@pytest.fixture
async def coordinator(gateway, settings) -> AsyncGenerator[SynchronizationCoordinator, None]:
    """Coordinator for user ``u1`` with the default chatbots seeded and persisted."""
    coord = SynchronizationCoordinator(gateway, settings=settings)
    assert await coord.initialize("u1", "alice")
    await coord.drain()
    yield coord
    await coord.stop()


@pytest.fixture
async def registry(gateway, session_factory, settings) -> AsyncGenerator[WorkspaceRegistry, None]:
    reg = WorkspaceRegistry(
        gateway=gateway,
        provider=LocalIdentityProvider(session_factory, settings),
        settings=settings,
    )
    yield reg
    await reg.close()


@pytest.fixture
async def client(registry) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with the workspace registry overridden."""
    app.dependency_overrides[get_registry] = lambda: registry

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def webhook_client():
    """Factory for an httpx.AsyncClient stand-in whose ``post`` returns or raises."""

    def _make(response: httpx.Response | None = None, error: Exception | None = None) -> AsyncMock:
        instance = AsyncMock()
        if error is not None:
            instance.post = AsyncMock(side_effect=error)
        else:
            instance.post = AsyncMock(return_value=response)
        instance.__aenter__ = AsyncMock(return_value=instance)
        instance.__aexit__ = AsyncMock(return_value=False)
        return instance

    return _make
