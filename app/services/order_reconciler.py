"""
Order Reconciler - applies a resolved payment status to our order, once.

The guard read catches plain duplicates; the conditional UPDATE catches
concurrent deliveries that both passed the read.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import select, update, and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.fsm.machine import can_transition
from app.fsm.states import OrderStatus
from app.models.order import Order, OrderItem
from app.services.fulfillment_notifier import FulfillmentNotifier
from app.services.payment_resolver import ResolvedOrderStatus

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_uuid(value) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        return None


@dataclass(frozen=True)
class ReconcileResult:
    applied: bool
    # applied, payment_id_recorded, not_payable, missing_reference,
    # order_not_found, already_processed, invalid_transition, no_line_items
    reason: str
    order_id: Optional[uuid.UUID] = None


class OrderReconciler:
    """State machine step pending -> paid for a resolved payment."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[FulfillmentNotifier] = None,
        download_window_days: int = 7,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.notifier = notifier
        self.download_window = timedelta(days=download_window_days)
        self.clock = clock

    async def reconcile(self, status: ResolvedOrderStatus) -> ReconcileResult:
        """
        Mark the referenced order paid.

        Returns applied=False for every condition that retrying cannot fix.
        Database errors propagate so the notification is redelivered.
        """
        if not status.is_paid:
            logger.info(
                f"Merchant order {status.merchant_order_id} not paid yet "
                f"({status.order_status}, {status.paid_amount}/{status.total_amount})"
            )
            return ReconcileResult(applied=False, reason="not_payable")

        if not status.external_reference:
            logger.warning(f"Merchant order {status.merchant_order_id} has no external_reference")
            return ReconcileResult(applied=False, reason="missing_reference")

        order_id = parse_uuid(status.external_reference)
        if order_id is None:
            logger.warning(f"external_reference {status.external_reference!r} is not an order id")
            return ReconcileResult(applied=False, reason="order_not_found")

        result = await self.db.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if not order:
            logger.error(f"Order {order_id} not found for merchant order {status.merchant_order_id}")
            return ReconcileResult(applied=False, reason="order_not_found", order_id=order_id)

        if order.status == OrderStatus.PAID.value:
            if order.mercado_pago_payment_id or not status.payment_id:
                logger.info(f"Order {order_id} already processed")
                return ReconcileResult(applied=False, reason="already_processed", order_id=order_id)
            return await self._record_payment_id(order_id, status.payment_id)

        if not can_transition(order.status, OrderStatus.PAID):
            logger.warning(f"Order {order_id} is {order.status}, refusing to mark paid")
            return ReconcileResult(applied=False, reason="invalid_transition", order_id=order_id)

        if status.paid_amount is not None and status.paid_amount < order.total_amount:
            logger.warning(
                f"Order {order_id} total {order.total_amount} exceeds paid amount {status.paid_amount}"
            )

        items = await self.db.execute(
            select(OrderItem.photo_id).where(OrderItem.order_id == order_id)
        )
        photo_ids = items.scalars().all()
        if not photo_ids:
            logger.error(f"Order {order_id} has no line items")
            return ReconcileResult(applied=False, reason="no_line_items", order_id=order_id)

        now = self.clock()
        expires_at = now + self.download_window
        try:
            updated = await self.db.execute(
                update(Order)
                .where(
                    Order.id == order_id,
                    Order.status == OrderStatus.PENDING.value,
                )
                .values(
                    status=OrderStatus.PAID.value,
                    mercado_pago_payment_id=status.payment_id,
                    download_expires_at=expires_at,
                    paid_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount == 0:
                await self.db.rollback()
                logger.info(f"Order {order_id} was marked paid concurrently")
                return ReconcileResult(applied=False, reason="already_processed", order_id=order_id)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error(f"Failed to mark order {order_id} paid", exc_info=True)
            raise

        logger.info(
            f"Order {order_id} paid",
            extra={
                "order_id": str(order_id),
                "payment_id": status.payment_id,
                "items_count": len(photo_ids),
                "download_expires_at": expires_at.isoformat(),
            },
        )

        if self.notifier is not None:
            await self.db.refresh(order)
            await self.notifier.on_reconciled(order)

        return ReconcileResult(applied=True, reason="applied", order_id=order_id)

    async def _record_payment_id(self, order_id: uuid.UUID, payment_id: str) -> ReconcileResult:
        """Fill in the payment id of an order that was marked paid without one."""
        try:
            updated = await self.db.execute(
                update(Order)
                .where(
                    and_(
                        Order.id == order_id,
                        Order.status == OrderStatus.PAID.value,
                        or_(Order.mercado_pago_payment_id.is_(None), Order.mercado_pago_payment_id == ""),
                    )
                )
                .values(mercado_pago_payment_id=payment_id)
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount == 0:
                await self.db.rollback()
                return ReconcileResult(applied=False, reason="already_processed", order_id=order_id)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error(f"Failed to record payment id for order {order_id}", exc_info=True)
            raise

        logger.info(f"Recorded payment {payment_id} on paid order {order_id}")
        return ReconcileResult(applied=True, reason="payment_id_recorded", order_id=order_id)
