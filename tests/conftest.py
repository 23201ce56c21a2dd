"""Test fixtures — a fresh app with in-memory backends per test.

Learn: create_app() accepts the version store and broadcaster, so every
test gets its own MemoryVersionStore + LocalBroadcaster and nothing leaks
between tests. No Redis is needed.

httpx's ASGITransport does not run the lifespan, so the `client` fixture
enters app.router.lifespan_context itself; that is what puts the
VersionService on app.state.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from vampsync.auth.jwt import create_session_token
from vampsync.config import Settings
from vampsync.main import create_app
from vampsync.realtime.broadcast import LocalBroadcaster
from vampsync.versions.store import MemoryVersionStore


@pytest.fixture()
def config():
    return Settings(environment="development")


@pytest.fixture()
def store():
    return MemoryVersionStore()


@pytest.fixture()
def broadcaster():
    return LocalBroadcaster()


@pytest.fixture()
def app(config, store, broadcaster):
    return create_app(config=config, version_store=store, broadcaster=broadcaster)


@pytest_asyncio.fixture()
async def client(app):
    """HTTP client against the app, with the lifespan running."""
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac


@pytest.fixture()
def auth_headers():
    """Bearer header carrying a valid session token."""
    token = create_session_token("test-user")
    return {"Authorization": f"Bearer {token}"}
