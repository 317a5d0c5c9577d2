import os
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

# Set test database URL before importing app
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

TEAM_HEADERS = {"X-Team-Id": "team-1", "X-User-Id": "user-1", "X-User-Name": "Dana"}


@pytest.fixture
def team_headers() -> dict:
    return dict(TEAM_HEADERS)


@pytest.fixture
def agent_service() -> MagicMock:
    """AgentService double; each test sets the return values it needs."""
    service = MagicMock()
    service.start_pm_copilot = AsyncMock()
    service.get_state = AsyncMock()
    service.list_pending = AsyncMock(return_value=[])
    service.approve = AsyncMock()
    service.reject = AsyncMock()
    return service


@pytest.fixture(name="client")
async def client_fixture(agent_service: MagicMock) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app with the agent service overridden."""
    from laborobo_ai.server.main import app
    from laborobo_ai.server.services.agent_service import get_agent_service

    app.dependency_overrides[get_agent_service] = lambda: agent_service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
