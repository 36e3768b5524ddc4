"""
Download endpoint for purchased original photos.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.services.download_gate import DownloadGate
from app.services.metrics import InMemoryMetrics, get_metrics
from app.services.storage_service import StorageError, StorageService, get_storage_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/download-photo/{photo_id}/{order_id}/{customer_email}")
async def download_photo(
    photo_id: str,
    order_id: str,
    customer_email: str,
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
    metrics: InMemoryMetrics = Depends(get_metrics),
):
    """Stream the original photo if the order grants another download."""
    gate = DownloadGate(db, metrics)
    decision = await gate.authorize(order_id, customer_email, photo_id)

    if not decision.granted:
        return JSONResponse(
            status_code=decision.reason.http_status,
            content={
                "status": "error",
                "reason": decision.reason.value,
                "message": decision.reason.message,
            },
        )

    try:
        content = await storage.download_original(decision.file_path)
    except StorageError:
        # The download was already counted; the customer still has the rest
        metrics.record_error("storage")
        return JSONResponse(
            status_code=500,
            content={"status": "error", "message": "Could not download the original photo."},
        )

    filename = decision.filename.replace('"', "")
    return Response(
        content=content,
        media_type="image/jpeg",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Downloads-Remaining": str(decision.remaining),
        },
    )
