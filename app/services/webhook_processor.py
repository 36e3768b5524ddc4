"""
Webhook Processor - runs a Mercado Pago notification through signature
verification, replay protection, payment resolution and reconciliation.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.fsm.states import NotificationTopic, WebhookStatus
from app.services.mercadopago_service import PaymentProcessorError
from app.services.order_reconciler import OrderReconciler
from app.services.payment_resolver import PaymentResolver
from app.services.replay_guard import ReplayGuard, idempotency_key
from app.services.signature import verify_signature

logger = logging.getLogger(__name__)

_SIGNATURE_STATUS = {
    "missing": WebhookStatus.MISSING_SIGNATURE,
    "malformed": WebhookStatus.INVALID_SIGNATURE_FORMAT,
}


@dataclass
class WebhookNotification:
    """The parts of an inbound notification we look at."""

    signature: Optional[str]
    request_id: Optional[str]
    topic: Optional[str]
    resource_id: Optional[str]


@dataclass
class WebhookResult:
    status: WebhookStatus
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def http_status(self) -> int:
        return self.status.http_status

    def body(self) -> Dict[str, Any]:
        return {"status": self.status.value, **self.details}


class WebhookProcessor:
    """One instance per request; collaborators are injected."""

    def __init__(
        self,
        replay_guard: ReplayGuard,
        resolver: PaymentResolver,
        reconciler: OrderReconciler,
        webhook_secret: Optional[str] = None,
        signature_tolerance: Optional[int] = None,
    ):
        self.replay_guard = replay_guard
        self.resolver = resolver
        self.reconciler = reconciler
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.mercadopago_webhook_secret
        )
        self.signature_tolerance = (
            signature_tolerance
            if signature_tolerance is not None
            else settings.webhook_signature_tolerance_seconds
        )

    async def process(self, notification: WebhookNotification) -> WebhookResult:
        """
        Process a notification. PaymentProcessorError and database failures
        produce FAILED; other errors propagate. Either way the replay key
        is released so the redelivery is processed.
        """
        topic = notification.topic
        resource_id = notification.resource_id
        log_ctx = {"topic": topic, "data_id": resource_id, "request_id": notification.request_id}

        check = verify_signature(
            notification.signature,
            notification.request_id,
            resource_id,
            self.webhook_secret,
            tolerance_seconds=self.signature_tolerance,
        )
        if not check.valid:
            logger.warning(f"Webhook signature rejected ({check.reason})", extra=log_ctx)
            return WebhookResult(_SIGNATURE_STATUS.get(check.reason, WebhookStatus.INVALID_SIGNATURE))

        key = idempotency_key(notification.request_id, topic, resource_id)
        if not await self.replay_guard.check_and_mark(key):
            logger.info(f"Webhook already processed: {key}", extra=log_ctx)
            return WebhookResult(WebhookStatus.ALREADY_PROCESSED)

        if topic not in (NotificationTopic.PAYMENT.value, NotificationTopic.MERCHANT_ORDER.value):
            logger.info(f"Ignoring webhook topic {topic}", extra=log_ctx)
            return WebhookResult(WebhookStatus.IGNORED_TOPIC)

        if not resource_id:
            logger.warning("Webhook without data id", extra=log_ctx)
            return WebhookResult(WebhookStatus.IGNORED_TOPIC)

        try:
            resolution = await self.resolver.resolve(topic, resource_id)
        except PaymentProcessorError as e:
            logger.error(f"Failed to resolve {topic} {resource_id}: {e}", extra=log_ctx)
            await self.replay_guard.release(key)
            return WebhookResult(WebhookStatus.FAILED, {"message": "Failed to fetch merchant_order"})
        except Exception:
            # Surfaces as a 500; the sender's retry must not look like a replay
            await self.replay_guard.release(key)
            raise

        if resolution.outcome is WebhookStatus.PAYMENT_NOT_READY:
            # The processor will notify again; let that delivery through
            await self.replay_guard.release(key)
            return WebhookResult(resolution.outcome)

        if not resolution.ready:
            return WebhookResult(resolution.outcome)

        try:
            result = await self.reconciler.reconcile(resolution.status)
        except SQLAlchemyError:
            logger.error(f"Reconciliation failed for {topic} {resource_id}", exc_info=True, extra=log_ctx)
            await self.replay_guard.release(key)
            return WebhookResult(WebhookStatus.FAILED, {"message": "Failed to update order"})
        except Exception:
            await self.replay_guard.release(key)
            raise

        if result.applied:
            logger.info(f"Webhook {topic} {resource_id} applied to order {result.order_id}", extra=log_ctx)

        return WebhookResult(
            WebhookStatus.PROCESSED,
            {
                "applied": result.applied,
                "reason": result.reason,
                "order_id": str(result.order_id) if result.order_id else None,
            },
        )
