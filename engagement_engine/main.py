"""
FastAPI application entry point for the Engagement Engine API.

This module configures logging, CORS, the exception handlers that map service
errors to HTTP status codes, and registers the API routers.

The database pool is only initialised when DATABASE_URL is configured; without
it the service runs on the in-memory store.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from engagement_engine import __version__
from engagement_engine.api import api_router
from engagement_engine.core.config import get_settings
from engagement_engine.core.database import init_db, close_db, create_schema
from engagement_engine.core.dependencies import reset_store
from engagement_engine.core.exceptions import InvalidStateTransitionError, NotFoundError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.

    On startup:
        - Initialize the database connection pool when DATABASE_URL is set

    On shutdown:
        - Close the database connection pool
        - Drop the process-wide store
    """
    settings = get_settings()

    # Startup
    logger.info("Engagement Engine API starting")
    if settings.database_url:
        try:
            await init_db()
            await create_schema()
            logger.info("Database connection pool initialized")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
    else:
        logger.info("DATABASE_URL not set, running on the in-memory store")

    yield

    # Shutdown
    logger.info("Engagement Engine API shutting down")
    reset_store()
    if settings.database_url:
        try:
            await close_db()
            logger.info("Database connection pool closed")
        except Exception as e:
            logger.error(f"Error closing database pool: {e}")


# Create FastAPI application
app = FastAPI(
    title="Engagement Engine API",
    version=__version__,
    description=(
        "Channel health classification, next-best-action recommendations, "
        "message saturation, operating constraints and execution plans "
        "for HCP engagement."
    ),
    lifespan=lifespan,
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidStateTransitionError)
async def invalid_transition_handler(
    request: Request, exc: InvalidStateTransitionError
) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "currentStatus": exc.current_status},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Register API routers
app.include_router(api_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancer probes.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy"}


@app.get("/")
async def root():
    """
    Root endpoint providing API information.

    Returns:
        Dict with API name and version
    """
    return {
        "name": "Engagement Engine API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "engagement_engine.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
