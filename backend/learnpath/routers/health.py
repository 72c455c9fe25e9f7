"""
Health Check Endpoints

Provides health check endpoints for monitoring and orchestration.

Endpoints:
- GET /api/health - Basic health check
- GET /api/health/detailed - Detailed health with dependency checks
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.config import settings
from learnpath.db.base import get_db
from learnpath.services.scheduler import get_scheduled_jobs

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("")
async def health_check():
    """
    Basic health check.

    Returns a simple status response indicating the API is running.
    """
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
    }


@router.get("/detailed")
async def detailed_health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Detailed health check with dependency status.

    Checks:
    - Database connectivity
    - Event bus workers
    - Scheduled jobs
    """
    health = {"status": "healthy", "service": settings.APP_NAME, "dependencies": {}}

    try:
        await db.execute(text("SELECT 1"))
        health["dependencies"]["database"] = {"status": "healthy"}
    except Exception as e:
        health["dependencies"]["database"] = {"status": "unhealthy", "error": str(e)}
        health["status"] = "degraded"

    event_bus = getattr(request.app.state, "event_bus", None)
    if event_bus is not None and event_bus.running:
        health["dependencies"]["event_bus"] = {
            "status": "healthy",
            "workers": event_bus.workers,
        }
    else:
        health["dependencies"]["event_bus"] = {"status": "stopped"}
        health["status"] = "degraded"

    health["scheduled_jobs"] = get_scheduled_jobs()
    return health
