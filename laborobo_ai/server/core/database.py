"""
Database Connection and Session Management.

This module sets up the asynchronous SQLAlchemy engine and session factory.
The service layer builds its repositories on `async_session_maker`.
"""

from laborobo_ai.agent_core.repos.sql import create_all, create_engine, create_sessionmaker
from laborobo_ai.server.core.config import settings

"""
engine:
    The global SQLAlchemy AsyncEngine instance.
    Configured with the connection URL from settings; Postgres URLs are
    normalized to the asyncpg driver.
"""
engine = create_engine(settings.database_url)

"""
async_session_maker:
    A global factory for creating new AsyncSession instances.
    Bound to the `engine` and configured to NOT expire on commit (typical for async).
"""
async_session_maker = create_sessionmaker(engine)

async def init_db() -> None:
    """
    Initialize the database.

    Creates all tables from the agent_core ORM metadata when
    ``DATABASE_CREATE_ALL`` is set. In production, Alembic migrations own the schema.
    """
    if settings.database_create_all:
        await create_all(engine)
