"""
FSM State Definitions.
Order lifecycle states and the outcome vocabularies of the payment
webhook and the download gate.
"""

from enum import Enum


class OrderStatus(str, Enum):
    """
    Status of an order record.
    pending -> paid | failed | cancelled; every other state is terminal.
    """

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.PENDING


class NotificationTopic(str, Enum):
    """Mercado Pago notification kinds we act on."""

    PAYMENT = "payment"
    MERCHANT_ORDER = "merchant_order"


class WebhookStatus(str, Enum):
    """
    Status reported back to the notifier in the JSON body.
    Everything except FAILED is acknowledged with HTTP 200.
    """

    MISSING_SIGNATURE = "missing_signature_ignored"
    INVALID_SIGNATURE_FORMAT = "invalid_signature_format_ignored"
    INVALID_SIGNATURE = "invalid_signature_ignored"
    ALREADY_PROCESSED = "already_processed"
    PAYMENT_NOT_READY = "payment_not_ready_yet"
    NOT_APPROVED = "not_approved"
    NO_MERCHANT_ORDER = "no_merchant_order"
    IGNORED_TOPIC = "ignored_topic"
    PROCESSED = "processed"
    FAILED = "error"

    @property
    def http_status(self) -> int:
        return 500 if self is WebhookStatus.FAILED else 200


class DownloadDenial(str, Enum):
    """Reasons the download gate refuses a request."""

    NOT_FOUND = "not-found-or-email-mismatch"
    NOT_PAID = "not-yet-paid"
    ITEM_NOT_PURCHASED = "item-not-purchased"
    QUOTA_EXCEEDED = "quota-exceeded"

    @property
    def http_status(self) -> int:
        statuses = {
            self.NOT_FOUND: 404,
            self.NOT_PAID: 403,
            self.ITEM_NOT_PURCHASED: 404,
            self.QUOTA_EXCEEDED: 403,
        }
        return statuses[self]

    @property
    def message(self) -> str:
        """User-facing message for the denial."""
        messages = {
            self.NOT_FOUND: "Order not found or email does not match.",
            self.NOT_PAID: "The order has not been paid yet.",
            self.ITEM_NOT_PURCHASED: "This photo is not part of your order.",
            self.QUOTA_EXCEEDED: "You have reached the download limit for this photo.",
        }
        return messages[self]
