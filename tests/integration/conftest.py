"""Shared fixtures for HTTP-level tests.

Authentication and the tenant session are replaced through FastAPI dependency
overrides; service classes are patched per test in the route modules.
"""

from collections.abc import AsyncGenerator
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from timetrack.api.main import app
from timetrack.core.deps import get_current_active_user, get_tenant_session


@pytest.fixture
def tenant_id() -> str:
    return str(uuid4())


@pytest.fixture
async def async_client(user, session, tenant_id) -> AsyncGenerator[AsyncClient, None]:
    """Client authenticated as `user` with a mocked tenant session."""

    async def _session():
        yield session

    app.dependency_overrides[get_current_active_user] = lambda: user
    app.dependency_overrides[get_tenant_session] = _session
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-Tenant-ID": tenant_id},
    ) as client:
        yield client
    app.dependency_overrides.clear()
