"""Shared pytest fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from justhigher.app import AppContainer, create_app
from justhigher.datastore.engine import Database
from justhigher.settings import Settings
from tests.support import ADMIN_TOKEN, FakeClock, FakeEpochClock, make_settings


# ---------------------------------------------------------------------------
# Clocks
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    """Return a datetime clock frozen until advanced."""
    return FakeClock()


@pytest.fixture
def epoch_clock() -> FakeEpochClock:
    """Return an epoch-seconds clock frozen until advanced."""
    return FakeEpochClock()


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


@pytest.fixture
async def database() -> AsyncGenerator[Database, None]:
    """Create an initialized in-memory SQLite database."""
    db = Database("sqlite+aiosqlite:///:memory:")
    await db.init()
    yield db
    await db.close()


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Return test settings."""
    return make_settings()


@pytest.fixture
async def container(settings: Settings) -> AsyncGenerator[AppContainer, None]:
    """Start an AppContainer without the background scheduler."""
    app_container = AppContainer(settings)
    await app_container.start(run_scheduler=False)
    yield app_container
    await app_container.stop()


@pytest.fixture
async def client(container: AppContainer) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the ASGI app, no network involved."""
    app = create_app(container, run_scheduler=False)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


@pytest.fixture
def admin_headers() -> dict[str, str]:
    """Authorization header accepted by the admin API."""
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}
