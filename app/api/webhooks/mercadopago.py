"""
Mercado Pago Webhook Handler.
Verifies signatures and reconciles paid orders.
"""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.services.fulfillment_notifier import FulfillmentNotifier
from app.services.mercadopago_service import MercadoPagoService, get_mercadopago_service
from app.services.metrics import InMemoryMetrics, get_metrics
from app.services.order_reconciler import OrderReconciler
from app.services.payment_resolver import PaymentResolver
from app.services.replay_guard import ReplayGuard, get_replay_guard
from app.services.webhook_processor import WebhookNotification, WebhookProcessor

router = APIRouter()
logger = logging.getLogger(__name__)


def _resource_tail(resource: Optional[str]) -> Optional[str]:
    """Legacy IPN sends `resource` as a URL; the id is its last segment."""
    if not resource:
        return None
    return str(resource).rstrip("/").rsplit("/", 1)[-1] or None


def extract_notification(
    headers: Dict[str, str],
    query: Dict[str, str],
    body: Dict[str, Any],
) -> WebhookNotification:
    """Pull signature, request id, topic and data id out of a request."""
    data = body.get("data") if isinstance(body.get("data"), dict) else {}
    resource_id = (
        query.get("data.id")
        or query.get("id")
        or data.get("id")
        or _resource_tail(body.get("resource"))
    )
    topic = query.get("type") or query.get("topic") or body.get("type") or body.get("topic")
    return WebhookNotification(
        signature=headers.get("x-signature"),
        request_id=headers.get("x-request-id"),
        topic=topic,
        resource_id=str(resource_id) if resource_id is not None else None,
    )


@router.post("/mercadopago")
async def mercadopago_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    replay_guard: ReplayGuard = Depends(get_replay_guard),
    mercadopago: MercadoPagoService = Depends(get_mercadopago_service),
    metrics: InMemoryMetrics = Depends(get_metrics),
):
    """
    Handle Mercado Pago notifications.

    Answers 200 for everything Mercado Pago should not redeliver and 500
    only when fetching the merchant order or updating our order failed.
    """
    raw = await request.body()
    try:
        body = json.loads(raw) if raw else {}
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    notification = extract_notification(
        {k.lower(): v for k, v in request.headers.items()},
        dict(request.query_params),
        body,
    )
    metrics.increment("webhooks_received")
    logger.info(
        f"Mercado Pago webhook received: {notification.topic} {notification.resource_id}",
        extra={"request_id": notification.request_id},
    )

    processor = WebhookProcessor(
        replay_guard=replay_guard,
        resolver=PaymentResolver(mercadopago, initial_delay=settings.payment_fetch_delay_seconds),
        reconciler=OrderReconciler(
            db,
            notifier=FulfillmentNotifier(db, metrics),
            download_window_days=settings.download_window_days,
        ),
    )
    result = await processor.process(notification)

    if result.http_status >= 500:
        metrics.record_error("webhook")
    return JSONResponse(status_code=result.http_status, content=result.body())
