"""FSM package for order state management."""

from app.fsm.states import OrderStatus, NotificationTopic, WebhookStatus, DownloadDenial

__all__ = ["OrderStatus", "NotificationTopic", "WebhookStatus", "DownloadDenial"]
