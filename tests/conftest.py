"""Shared pytest fixtures for Canopy tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from canopy.db.connection import Database
from canopy.main import app
from canopy.tree.store import NodeStore
from canopy.workspaces.router import get_workspace_service
from canopy.workspaces.service import WorkspaceService


@pytest.fixture
async def db():
    """In-memory database for tests."""
    database = await Database.connect(":memory:")
    yield database
    await database.close()


@pytest.fixture
def store():
    """Empty NodeStore with default limits."""
    return NodeStore()


@pytest.fixture
async def workspace_service(db):
    return WorkspaceService(db)


@pytest.fixture
async def client(workspace_service):
    """Async test client with in-memory DB wired into the app."""
    app.dependency_overrides[get_workspace_service] = lambda: workspace_service
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
