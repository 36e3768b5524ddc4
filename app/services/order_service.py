"""
Order Service - customer-facing order lookups.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.download import PhotoDownload
from app.models.order import Order, OrderItem
from app.models.photo import Photo
from app.services.download_gate import normalize_email
from app.services.order_reconciler import parse_uuid

logger = logging.getLogger(__name__)


class OrderService:
    """Read side of orders for the success page."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_order_for_customer(self, order_id: str, customer_email: str) -> Optional[Order]:
        order_uuid = parse_uuid(order_id)
        email = normalize_email(customer_email)
        if order_uuid is None or not email:
            return None

        result = await self.db.execute(
            select(Order).where(
                Order.id == order_uuid,
                func.lower(Order.customer_email) == email,
            )
        )
        return result.scalar_one_or_none()

    async def get_order_details(self, order_id: str, customer_email: str) -> Optional[Dict[str, Any]]:
        """
        Order summary with purchased photos and remaining downloads.
        None when the order does not exist or the email does not match.
        """
        order = await self.get_order_for_customer(order_id, customer_email)
        if order is None:
            return None

        summary = {
            "id": str(order.id),
            "customer_email": order.customer_email,
            "status": order.status,
            "download_expires_at": (
                order.download_expires_at.isoformat() if order.download_expires_at else None
            ),
        }
        if not order.is_paid:
            return {"order": summary, "photos": []}

        result = await self.db.execute(
            select(Photo, PhotoDownload.download_count)
            .join(OrderItem, OrderItem.photo_id == Photo.id)
            .outerjoin(
                PhotoDownload,
                (PhotoDownload.order_id == OrderItem.order_id)
                & (PhotoDownload.photo_id == Photo.id),
            )
            .where(OrderItem.order_id == order.id)
        )

        photos = []
        for photo, download_count in result.all():
            used = download_count or 0
            photos.append({
                "id": str(photo.id),
                "student_code": photo.student_code,
                "price": str(photo.price),
                "watermarked_url": (
                    f"{settings.supabase_url}/storage/v1/object/public/"
                    f"watermarked-photos/{photo.watermarked_file_path}"
                ),
                "downloads_used": used,
                "downloads_remaining": max(settings.max_downloads - used, 0),
            })

        return {"order": summary, "photos": photos}
