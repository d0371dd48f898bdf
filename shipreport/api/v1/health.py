"""
Health check endpoints.
"""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends

from shipreport.api.deps import get_cache
from shipreport.core.config import settings
from shipreport.core.logging import get_logger
from shipreport.repositories.cache_repo import InMemoryResponseCache

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """
    Basic health check endpoint.
    Returns application status.
    """
    return {
        "status": "healthy",
        "app": settings.app_name,
        "environment": settings.app_env,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/ready")
async def readiness_check(
    cache: InMemoryResponseCache = Depends(get_cache),
) -> dict[str, Any]:
    """
    Readiness check endpoint.
    Reports whether the upstream credentials a run needs are configured.
    """
    missing = settings.missing_credentials()
    checks = {
        "app": True,
        "credentials": not missing,
        "jira": settings.jira_configured,
        "github_token": bool(settings.github.api_key),
    }

    return {
        "status": "ready" if checks["credentials"] else "not_ready",
        "checks": checks,
        "missing": missing,
        "cache": await cache.get_stats(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness check endpoint.
    Simple check that the application is running.
    """
    return {"status": "alive"}
