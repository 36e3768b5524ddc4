"""
Monitoring endpoints: metrics and dependency health.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_admin_user
from app.database import get_db
from app.redis import RedisClient
from app.services.metrics import InMemoryMetrics, get_metrics
from app.services.storage_service import StorageService, get_storage_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/metrics")
async def read_metrics(
    metrics: InMemoryMetrics = Depends(get_metrics),
    _: str = Depends(get_admin_user),
):
    return metrics.snapshot()


@router.delete("/metrics")
async def reset_metrics(
    metrics: InMemoryMetrics = Depends(get_metrics),
    _: str = Depends(get_admin_user),
):
    metrics.reset()
    logger.info("Metrics reset")
    return {"message": "Metrics reset"}


@router.get("/health")
async def health(
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
    _: str = Depends(get_admin_user),
):
    """Check the database and object storage, plus Redis when configured."""
    checks = {"server": "ok", "database": "ok"}

    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = "error"

    if RedisClient.is_configured():
        try:
            await RedisClient.get_client().ping()
            checks["cache"] = "ok"
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            checks["cache"] = "error"

    checks["storage"] = "ok" if await storage.ping() else "error"

    healthy = all(value == "ok" for value in checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "degraded",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
