"""
Download Gate - decides whether an original photo may be downloaded and
consumes one unit of its download quota.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.fsm.states import DownloadDenial, OrderStatus
from app.models.download import PhotoDownload
from app.models.order import Order, OrderItem
from app.models.photo import Photo
from app.services.metrics import MetricsSink
from app.services.order_reconciler import parse_uuid

logger = logging.getLogger(__name__)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


@dataclass(frozen=True)
class DownloadDecision:
    granted: bool
    reason: Optional[DownloadDenial] = None
    file_path: Optional[str] = None
    filename: Optional[str] = None
    download_count: int = 0
    max_downloads: int = 0

    @property
    def remaining(self) -> int:
        return max(self.max_downloads - self.download_count, 0)


class DownloadGate:
    """Checks order, payment, ownership and quota, in that order."""

    def __init__(
        self,
        db: AsyncSession,
        metrics: Optional[MetricsSink] = None,
        max_downloads: Optional[int] = None,
    ):
        self.db = db
        self.metrics = metrics
        self.max_downloads = max_downloads if max_downloads is not None else settings.max_downloads

    def _deny(self, reason: DownloadDenial, order_id, photo_id) -> DownloadDecision:
        logger.info(f"Download denied for order {order_id} photo {photo_id}: {reason.value}")
        return DownloadDecision(granted=False, reason=reason, max_downloads=self.max_downloads)

    async def authorize(self, order_id, customer_email: str, photo_id) -> DownloadDecision:
        """
        Authorize one download. The quota is consumed only after every other
        check has passed.
        """
        order_uuid = parse_uuid(order_id)
        photo_uuid = parse_uuid(photo_id)
        email = normalize_email(customer_email)

        if order_uuid is None or not email:
            return self._deny(DownloadDenial.NOT_FOUND, order_id, photo_id)

        result = await self.db.execute(
            select(Order.status).where(
                Order.id == order_uuid,
                func.lower(Order.customer_email) == email,
            )
        )
        order_status = result.scalar_one_or_none()
        if order_status is None:
            return self._deny(DownloadDenial.NOT_FOUND, order_id, photo_id)

        if order_status != OrderStatus.PAID.value:
            return self._deny(DownloadDenial.NOT_PAID, order_id, photo_id)

        if photo_uuid is None:
            return self._deny(DownloadDenial.ITEM_NOT_PURCHASED, order_id, photo_id)

        result = await self.db.execute(
            select(OrderItem.id)
            .where(OrderItem.order_id == order_uuid, OrderItem.photo_id == photo_uuid)
            .limit(1)
        )
        if result.scalar_one_or_none() is None:
            return self._deny(DownloadDenial.ITEM_NOT_PURCHASED, order_id, photo_id)

        result = await self.db.execute(
            select(Photo.original_file_path, Photo.photo_metadata).where(Photo.id == photo_uuid)
        )
        photo_row = result.first()
        if photo_row is None:
            logger.error(f"Photo {photo_uuid} is in order {order_uuid} but missing from photos")
            return self._deny(DownloadDenial.ITEM_NOT_PURCHASED, order_id, photo_id)

        count = await self._consume(order_uuid, photo_uuid)
        if count is None:
            return self._deny(DownloadDenial.QUOTA_EXCEEDED, order_id, photo_id)

        if self.metrics is not None:
            self.metrics.increment("photos_downloaded")

        file_path, metadata = photo_row
        filename = (metadata or {}).get("originalName") or f"photo-{photo_uuid}.jpg"
        logger.info(f"Download {count}/{self.max_downloads} granted for order {order_uuid} photo {photo_uuid}")
        return DownloadDecision(
            granted=True,
            file_path=file_path,
            filename=filename,
            download_count=count,
            max_downloads=self.max_downloads,
        )

    async def _consume(self, order_id: uuid.UUID, photo_id: uuid.UUID) -> Optional[int]:
        """
        Take one download from the quota. Returns the new count, or None when
        the quota is used up. The increment is a conditional UPDATE so two
        concurrent requests cannot both take the last download.
        """
        if self.max_downloads < 1:
            return None

        # Second pass only after losing a race to create the counter row
        for _ in range(2):
            result = await self.db.execute(
                update(PhotoDownload)
                .where(
                    PhotoDownload.order_id == order_id,
                    PhotoDownload.photo_id == photo_id,
                    PhotoDownload.download_count < self.max_downloads,
                )
                .values(download_count=PhotoDownload.download_count + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                await self.db.commit()
                return await self.current_count(order_id, photo_id)

            existing = await self.current_count(order_id, photo_id)
            if existing:
                return None

            self.db.add(PhotoDownload(order_id=order_id, photo_id=photo_id, download_count=1))
            try:
                await self.db.commit()
                return 1
            except IntegrityError:
                await self.db.rollback()

        return None

    async def current_count(self, order_id: uuid.UUID, photo_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(PhotoDownload.download_count).where(
                PhotoDownload.order_id == order_id,
                PhotoDownload.photo_id == photo_id,
            )
        )
        return result.scalar_one_or_none() or 0
