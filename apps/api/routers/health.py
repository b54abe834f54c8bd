"""Health check router: liveness + readiness.

Readiness issues a one-row read against the import job table so a broken
Supabase configuration shows up before uploads start failing.
"""

import structlog
from fastapi import APIRouter

from apps.api.core.auth import get_service_client

router = APIRouter(tags=["health"])
logger = structlog.get_logger()


@router.get("/health")
async def health_liveness():
    """Liveness probe: returns 200 if the API process is running."""
    return {"status": "healthy", "service": "api"}


@router.get("/health/ready")
async def health_readiness():
    status = {
        "status": "healthy",
        "services": {
            "api": "up",
            "supabase": "unknown",
        },
    }

    try:
        client = get_service_client()
        client.table("marketplace_import_jobs").select("id").limit(1).execute()
        status["services"]["supabase"] = "up"
    except Exception as e:
        status["services"]["supabase"] = "down"
        status["status"] = "degraded"
        logger.warning("supabase_health_failed", error=str(e))

    return status
