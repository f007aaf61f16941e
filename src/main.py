"""allme - personal task engine with recurring series and a day timeline."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from src.core.config import constants, settings
from src.core.db_client import close_connection, init_db
from src.core.logging import configure_logfire, instrument_fastapi
from src.interface.tasks_router import register_error_handlers, router as tasks_router


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    # Configure logging first so schema setup logs are captured
    configure_logfire()

    await init_db()
    logger.info("Database initialized", extra={"path": settings.sqlite_db_path})

    yield
    # Shutdown
    await close_connection()


app = FastAPI(
    title="allme",
    description="Personal task engine with recurring series and a day timeline",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(tasks_router)
register_error_handlers(app)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=constants.HTTP_OK)
