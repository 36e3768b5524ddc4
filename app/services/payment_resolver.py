"""
Payment Resolver - turns a notification reference into the authoritative
merchant-order status fetched from Mercado Pago.
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from app.fsm.states import NotificationTopic, WebhookStatus
from app.services.mercadopago_service import MercadoPagoService

logger = logging.getLogger(__name__)


def to_decimal(value: Any) -> Optional[Decimal]:
    """Parse a processor amount without float rounding."""
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


@dataclass(frozen=True)
class ResolvedOrderStatus:
    """What the processor says about one of our orders."""

    external_reference: Optional[str]
    paid_amount: Optional[Decimal]
    total_amount: Optional[Decimal]
    order_status: Optional[str]
    payment_id: Optional[str] = None
    merchant_order_id: Optional[str] = None

    @property
    def is_paid(self) -> bool:
        """
        Paid when the processor says so, or when the paid amount covers a
        positive total. Some merchant orders keep a stale order_status.
        """
        if self.order_status == "paid":
            return True
        if self.paid_amount is None or self.total_amount is None:
            return False
        return self.total_amount > 0 and self.paid_amount >= self.total_amount

    @classmethod
    def from_merchant_order(
        cls,
        data: Dict[str, Any],
        payment_id: Optional[str] = None,
    ) -> "ResolvedOrderStatus":
        if payment_id is None:
            payment_id = _pick_payment_id(data.get("payments") or [])
        return cls(
            external_reference=data.get("external_reference") or None,
            paid_amount=to_decimal(data.get("paid_amount")),
            total_amount=to_decimal(data.get("total_amount")),
            order_status=data.get("order_status"),
            payment_id=payment_id,
            merchant_order_id=str(data["id"]) if data.get("id") is not None else None,
        )


def _pick_payment_id(payments: list) -> Optional[str]:
    """Prefer an approved payment, else the first one listed."""
    for payment in payments:
        if payment.get("status") == "approved" and payment.get("id") is not None:
            return str(payment["id"])
    if payments and payments[0].get("id") is not None:
        return str(payments[0]["id"])
    return None


@dataclass(frozen=True)
class Resolution:
    """
    Outcome of resolving a notification. `status` is only set when
    `outcome` is PROCESSED; any other outcome is acknowledged and dropped.
    """

    outcome: WebhookStatus
    status: Optional[ResolvedOrderStatus] = None

    @property
    def ready(self) -> bool:
        return self.outcome is WebhookStatus.PROCESSED and self.status is not None


class PaymentResolver:
    """Fetches payment / merchant order details for a notification."""

    def __init__(self, mercadopago: MercadoPagoService, initial_delay: float = 0.0):
        self.mercadopago = mercadopago
        self.initial_delay = initial_delay

    async def resolve(self, topic: str, resource_id: str) -> Resolution:
        """
        Resolve a notification.

        Raises PaymentProcessorError when the merchant order cannot be
        fetched; the caller answers 500 so the notification is redelivered.
        """
        if topic == NotificationTopic.PAYMENT.value:
            return await self._resolve_payment(resource_id)
        if topic == NotificationTopic.MERCHANT_ORDER.value:
            return await self._resolve_merchant_order(resource_id)
        return Resolution(outcome=WebhookStatus.IGNORED_TOPIC)

    async def _resolve_payment(self, payment_id: str) -> Resolution:
        # Give Mercado Pago time to make the payment readable
        if self.initial_delay > 0:
            await asyncio.sleep(self.initial_delay)

        payment = await self.mercadopago.get_payment(payment_id)
        if payment is None:
            return Resolution(outcome=WebhookStatus.PAYMENT_NOT_READY)

        if payment.get("status") != "approved":
            logger.info(f"Payment {payment_id} not approved: {payment.get('status')}")
            return Resolution(outcome=WebhookStatus.NOT_APPROVED)

        merchant_order_id = (payment.get("order") or {}).get("id")
        if not merchant_order_id:
            logger.warning(f"Approved payment {payment_id} has no merchant_order")
            return Resolution(outcome=WebhookStatus.NO_MERCHANT_ORDER)

        merchant_order = await self.mercadopago.get_merchant_order(str(merchant_order_id))
        return Resolution(
            outcome=WebhookStatus.PROCESSED,
            status=ResolvedOrderStatus.from_merchant_order(
                merchant_order,
                payment_id=str(payment.get("id") or payment_id),
            ),
        )

    async def _resolve_merchant_order(self, merchant_order_id: str) -> Resolution:
        merchant_order = await self.mercadopago.get_merchant_order(merchant_order_id)
        return Resolution(
            outcome=WebhookStatus.PROCESSED,
            status=ResolvedOrderStatus.from_merchant_order(merchant_order),
        )
