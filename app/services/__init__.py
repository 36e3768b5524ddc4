"""Services package."""

from app.services.mercadopago_service import MercadoPagoService, PaymentProcessorError
from app.services.payment_resolver import PaymentResolver, ResolvedOrderStatus
from app.services.order_reconciler import OrderReconciler, ReconcileResult
from app.services.fulfillment_notifier import FulfillmentNotifier
from app.services.download_gate import DownloadGate, DownloadDecision
from app.services.replay_guard import ReplayGuard, InMemoryReplayGuard, RedisReplayGuard
from app.services.storage_service import StorageService, StorageError
from app.services.checkout_service import CheckoutService, CheckoutError
from app.services.order_service import OrderService
from app.services.metrics import InMemoryMetrics, MetricsSink

__all__ = [
    "MercadoPagoService",
    "PaymentProcessorError",
    "PaymentResolver",
    "ResolvedOrderStatus",
    "OrderReconciler",
    "ReconcileResult",
    "FulfillmentNotifier",
    "DownloadGate",
    "DownloadDecision",
    "ReplayGuard",
    "InMemoryReplayGuard",
    "RedisReplayGuard",
    "StorageService",
    "StorageError",
    "CheckoutService",
    "CheckoutError",
    "OrderService",
    "InMemoryMetrics",
    "MetricsSink",
]
