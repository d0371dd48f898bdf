"""
FastAPI application entry point.
"""

import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shipreport.api.deps import container
from shipreport.api.v1 import health, status
from shipreport.core.config import settings
from shipreport.core.constants import API_PREFIX
from shipreport.core.exceptions import ShipReportError
from shipreport.core.logging import get_logger, setup_logging

# Initialize logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info(
        "Starting shipreport",
        app_name=settings.app_name,
        env=settings.app_env,
    )

    container.initialize()
    missing = settings.missing_credentials()
    if missing:
        logger.warning("Status runs will fail until credentials are set", missing=missing)

    yield

    logger.info("Shutting down shipreport")
    await container.cache.clear()


# Create FastAPI application
app = FastAPI(
    title="shipreport API",
    description="Periodic \"what shipped\" reports from Bugzilla, Jira and GitHub",
    version="1.0.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(ShipReportError)
async def shipreport_error_handler(
    request: Request,
    exc: ShipReportError,
) -> JSONResponse:
    """Handle application errors."""
    tracking_id = uuid.uuid4().hex
    logger.error(
        "Application error",
        error_code=exc.code,
        error_message=exc.message,
        path=request.url.path,
        tracking_id=tracking_id,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(tracking_id),
    )


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle unexpected errors."""
    tracking_id = uuid.uuid4().hex
    logger.exception(
        "Unexpected error",
        error=str(exc),
        path=request.url.path,
        tracking_id=tracking_id,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "trackingId": tracking_id,
            }
        },
    )


# Include routers
app.include_router(health.router, prefix=API_PREFIX, tags=["Health"])
app.include_router(status.router, prefix=API_PREFIX, tags=["Status"])


# Root endpoint
@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "docs": "/docs" if settings.debug else "Disabled in production",
    }


# API info endpoint
@app.get("/api")
async def api_info() -> dict[str, Any]:
    """API information endpoint."""
    return {
        "name": "shipreport API",
        "version": "1.0.0",
        "prefix": API_PREFIX,
        "endpoints": {
            "health": f"{API_PREFIX}/health",
            "status": f"{API_PREFIX}/status",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "shipreport.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
    )
