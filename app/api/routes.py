"""
System routes for the onboarding API

- GET /v1/ping
- GET /v1/health
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db

router = APIRouter()


@router.get("/ping", tags=["System"])
async def ping():
    """Simple ping endpoint for load balancer health checks.

    Does not check database - just confirms the app is running.
    Use /health for full health status including database.
    """
    return {"status": "ok"}


@router.get("/health", tags=["System"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """Full health check with database verification and integration status."""
    settings = get_settings()
    checks = {}

    try:
        await db.execute(select(1))
        checks["database"] = "healthy"
    except Exception as e:
        checks["database"] = f"unhealthy: {str(e)}"

    checks["storage"] = "configured" if settings.has_r2 else "not configured"
    checks["email"] = "configured" if settings.has_email else "not configured"
    checks["razorpay"] = (
        f"configured ({settings.razorpay_mode})"
        if settings.is_razorpay_configured
        else "not configured"
    )

    healthy = checks["database"] == "healthy"

    return {
        "status": "healthy" if healthy else "degraded",
        "checks": checks,
        "version": settings.api_version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
