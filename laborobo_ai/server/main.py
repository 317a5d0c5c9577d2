"""
Main Application Entry Point.

This module initializes the FastAPI application, configures middleware (CORS),
and includes all API routers. It serves as the root of the web server.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from laborobo_ai.core.logging_config import get_logger, setup_logging

from .api.v1 import health, inbox, workflows
from .core import constant
from .core.config import settings
from .core.database import init_db
from .exception_handlers import setup_exception_handlers

# Initialize logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifespan events.

    Handles startup and shutdown events for the FastAPI application.
    """
    # Startup
    try:
        logger.info("Starting up Laborobo-AI Server...")
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    yield

    # Shutdown
    logger.info("Shutting down Laborobo-AI Server...")


app = FastAPI(
    title=constant.PROJECT_NAME,
    description="""
    Laborobo-AI Server API

    Runs Laborobo agent workflows (PM Copilot) and exposes their human-in-the-loop
    approvals. Every agent tool call passes the tool gateway's permission, approval
    and budget checks and is written to the activity log.
    """,
    version="0.1.0",
    openapi_url=f"{constant.API_V1_STR}/openapi.json",
    docs_url=f"{constant.API_V1_STR}/docs",
    redoc_url=f"{constant.API_V1_STR}/redoc",
    lifespan=lifespan,
)

cors = settings.cors
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors.origins,
    allow_credentials=cors.allow_credentials,
    allow_methods=cors.allow_methods,
    allow_headers=cors.allow_headers,
)

setup_exception_handlers(app)

app.include_router(health.router, tags=["health"])
app.include_router(workflows.router, prefix=f"{constant.API_V1_STR}/workflows", tags=["workflows"])
app.include_router(inbox.router, prefix=f"{constant.API_V1_STR}/inbox", tags=["inbox"])


def run() -> None:
    """Serve the application with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run("laborobo_ai.server.main:app", host=settings.server_host, port=settings.server_port)
