"""
Checkout Service - creates pending orders and Mercado Pago preferences.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.fsm.states import OrderStatus
from app.models.order import Order, OrderItem
from app.models.photo import Photo
from app.services.download_gate import normalize_email
from app.services.mercadopago_service import MercadoPagoService
from app.services.metrics import MetricsSink
from app.services.order_reconciler import parse_uuid

logger = logging.getLogger(__name__)


class CheckoutError(Exception):
    """Cart cannot be turned into an order."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class CartLine:
    photo_id: str
    quantity: int = 1


@dataclass(frozen=True)
class CheckoutResult:
    order_id: uuid.UUID
    preference_id: str
    init_point: Optional[str]
    total_amount: Decimal


class CheckoutService:
    """Turns a cart into a pending order plus a payment preference."""

    CURRENCY = "ARS"

    def __init__(
        self,
        db: AsyncSession,
        mercadopago: MercadoPagoService,
        metrics: Optional[MetricsSink] = None,
    ):
        self.db = db
        self.mercadopago = mercadopago
        self.metrics = metrics

    async def create_order(self, cart: List[CartLine], customer_email: str) -> CheckoutResult:
        """
        Create the order and its items, then the preference.

        Prices come from the stored photos. The caller's session commits
        on success; a failed preference rolls the order back with it.
        """
        email = normalize_email(customer_email)
        if not cart or not email:
            raise CheckoutError("Cart is empty or customer email is missing")

        quantities: Dict[uuid.UUID, int] = {}
        for line in cart:
            photo_id = parse_uuid(line.photo_id)
            if photo_id is None or line.quantity < 1:
                raise CheckoutError(f"Invalid cart line: {line.photo_id}")
            quantities[photo_id] = quantities.get(photo_id, 0) + line.quantity

        result = await self.db.execute(select(Photo).where(Photo.id.in_(list(quantities))))
        photos = {photo.id: photo for photo in result.scalars().all()}
        missing = [str(pid) for pid in quantities if pid not in photos]
        if missing:
            raise CheckoutError(f"Photos not found: {', '.join(missing)}", status_code=404)

        # The order is attributed to the photographer of the first cart line
        photographer_id = photos[next(iter(quantities))].album.photographer_id

        total = sum(
            (photos[pid].price * qty for pid, qty in quantities.items()),
            Decimal("0"),
        )

        order = Order(
            customer_email=email,
            total_amount=total,
            status=OrderStatus.PENDING.value,
            photographer_id=photographer_id,
        )
        order.items = [
            OrderItem(photo_id=pid, price_at_purchase=photos[pid].price, quantity=qty)
            for pid, qty in quantities.items()
        ]
        self.db.add(order)
        await self.db.flush()

        preference = await self.mercadopago.create_preference(
            self._preference_body(order.id, email, total)
        )
        init_point = (
            preference.get("init_point")
            if settings.is_production
            else preference.get("sandbox_init_point") or preference.get("init_point")
        )

        if self.metrics is not None:
            self.metrics.increment("orders_created")

        logger.info(f"Payment preference created for order {order.id}: {total} {self.CURRENCY}")
        return CheckoutResult(
            order_id=order.id,
            preference_id=str(preference.get("id")),
            init_point=init_point,
            total_amount=total,
        )

    def _preference_body(self, order_id: uuid.UUID, email: str, total: Decimal) -> Dict[str, Any]:
        return_url = (
            f"{settings.frontend_url}/success.html"
            f"?orderId={order_id}&customerEmail={quote(email)}"
        )
        return {
            "items": [
                {
                    "title": "School photos",
                    "unit_price": float(total),
                    "quantity": 1,
                    "currency_id": self.CURRENCY,
                }
            ],
            "payer": {"email": email},
            "external_reference": str(order_id),
            "back_urls": {
                "success": return_url,
                "failure": return_url,
                "pending": return_url,
            },
            "auto_return": "approved",
            "notification_url": f"{settings.backend_url}/webhooks/mercadopago",
        }
