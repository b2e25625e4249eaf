"""Integration fixtures: the full app over an ASGI transport."""

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from threadline.main import create_app


@pytest_asyncio.fixture
async def app(settings, storage):
    application = create_app(settings, storage=storage)
    yield application
    await application.state.services.background.drain(timeout=5)


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def admin_token(client):
    """Set the admin password and return the token that proves admin identity."""
    res = await client.post("/", json={"event": "SET_PASSWORD", "password": "s3cret"})
    assert res.json()["code"] == 0
    return "s3cret"
