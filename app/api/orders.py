"""
Checkout and order lookup endpoints.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.services.checkout_service import CartLine, CheckoutError, CheckoutService
from app.services.mercadopago_service import (
    MercadoPagoService,
    PaymentProcessorError,
    get_mercadopago_service,
)
from app.services.metrics import InMemoryMetrics, get_metrics
from app.services.order_service import OrderService

router = APIRouter()
logger = logging.getLogger(__name__)


class CartItem(BaseModel):
    """One cart line as sent by the storefront."""
    photo_id: str = Field(alias="photoId")
    quantity: int = 1


class CreatePreferenceRequest(BaseModel):
    """Request body for starting a checkout."""
    cart: List[CartItem]
    customer_email: str = Field(alias="customerEmail")


@router.post("/create-payment-preference")
async def create_payment_preference(
    request: CreatePreferenceRequest,
    db: AsyncSession = Depends(get_db),
    mercadopago: MercadoPagoService = Depends(get_mercadopago_service),
    metrics: InMemoryMetrics = Depends(get_metrics),
):
    """
    Create a pending order and a Mercado Pago checkout preference.
    """
    service = CheckoutService(db, mercadopago, metrics)
    try:
        result = await service.create_order(
            [CartLine(photo_id=item.photo_id, quantity=item.quantity) for item in request.cart],
            request.customer_email,
        )
    except CheckoutError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except PaymentProcessorError as e:
        logger.error(f"Preference creation failed: {e}")
        raise HTTPException(status_code=502, detail="Could not create payment preference")

    return {
        "message": "Preference created",
        "init_point": result.init_point,
        "preference_id": result.preference_id,
        "orderId": str(result.order_id),
    }


@router.get("/order-details/{order_id}/{customer_email}")
async def get_order_details(
    order_id: str,
    customer_email: str,
    db: AsyncSession = Depends(get_db),
):
    """Order status and, once paid, the purchased photos."""
    details = await OrderService(db).get_order_details(order_id, customer_email)
    if details is None:
        raise HTTPException(status_code=404, detail="Order not found or email does not match")
    return details
