"""
Fulfillment Notifier - bookkeeping after an order has been marked paid.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.order import Order
from app.models.download import DownloadAccess
from app.services.metrics import MetricsSink

logger = logging.getLogger(__name__)


class FulfillmentNotifier:
    """
    Best-effort side effects of a reconciliation. The paid transition is
    already committed when this runs, so nothing here may undo it.
    """

    def __init__(self, db: AsyncSession, metrics: Optional[MetricsSink] = None):
        self.db = db
        self.metrics = metrics

    async def on_reconciled(self, order: Order) -> None:
        order_id = order.id
        customer_email = order.customer_email

        try:
            await self.ensure_download_access(order_id, customer_email)
        except Exception:
            logger.warning(f"Could not create download record for order {order_id}", exc_info=True)
            await self.db.rollback()

        if self.metrics is not None:
            try:
                self.metrics.increment("orders_paid")
            except Exception:
                logger.warning("Failed to record orders_paid metric", exc_info=True)

    async def ensure_download_access(self, order_id: uuid.UUID, customer_email: str) -> bool:
        """Create the order's download record unless it exists. True if created."""
        result = await self.db.execute(
            select(DownloadAccess.id).where(DownloadAccess.order_id == order_id)
        )
        if result.scalar_one_or_none() is not None:
            return False

        self.db.add(
            DownloadAccess(
                order_id=order_id,
                customer_email=customer_email,
                download_count=0,
            )
        )
        try:
            await self.db.commit()
        except IntegrityError:
            # Concurrent delivery created it first
            await self.db.rollback()
            logger.info(f"Download record for order {order_id} already exists")
            return False

        logger.info(f"Download record created for order {order_id}")
        return True
