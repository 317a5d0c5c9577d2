"""
Unit tests for FastAPI application lifespan management.

Startup initializes the database (tables are only created when
``DATABASE_CREATE_ALL`` is set) and a failing initialization does not stop the
server from starting.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI

pytestmark = pytest.mark.asyncio


class TestLifespan:
    async def test_startup_calls_init_db(self):
        from laborobo_ai.server.main import lifespan

        with patch("laborobo_ai.server.main.init_db", new_callable=AsyncMock) as mock_init:
            async with lifespan(FastAPI()):
                mock_init.assert_awaited_once()

    async def test_startup_survives_database_errors(self):
        from laborobo_ai.server.main import lifespan

        with patch("laborobo_ai.server.main.init_db", AsyncMock(side_effect=ConnectionError("db down"))), patch(
            "laborobo_ai.server.main.logger"
        ) as mock_logger:
            async with lifespan(FastAPI()):
                pass

        assert "Database initialization failed" in mock_logger.error.call_args[0][0]


class TestInitDb:
    async def test_creates_tables_when_enabled(self, monkeypatch):
        from laborobo_ai.server.core import database

        monkeypatch.setattr(database.settings, "database_create_all", True)
        with patch("laborobo_ai.server.core.database.create_all", new_callable=AsyncMock) as mock_create:
            await database.init_db()

        mock_create.assert_awaited_once_with(database.engine)

    async def test_leaves_schema_to_migrations_by_default(self, monkeypatch):
        from laborobo_ai.server.core import database

        monkeypatch.setattr(database.settings, "database_create_all", False)
        with patch("laborobo_ai.server.core.database.create_all", new_callable=AsyncMock) as mock_create:
            await database.init_db()

        mock_create.assert_not_awaited()
