"""
Tests for the Mercado Pago client and payment resolution.
"""

from decimal import Decimal

import pytest

from app.fsm.states import WebhookStatus
from app.services.mercadopago_service import PaymentProcessorError
from app.services.payment_resolver import PaymentResolver, ResolvedOrderStatus, to_decimal

from factories import merchant_order_payload

ORDER_ID = "8b1a9953-c461-4296-a1f6-0d5b2e8e1f11"


class TestResolvedOrderStatus:
    """Tests for the paid decision on a merchant order."""

    def test_paid_by_status(self):
        """A merchant order reported paid counts as paid."""
        status = ResolvedOrderStatus("ref", Decimal("0"), Decimal("100"), "paid")
        assert status.is_paid

    def test_paid_by_amount(self):
        """Paid amount equal to the total counts as paid."""
        status = ResolvedOrderStatus("ref", Decimal("100.00"), Decimal("100"), "opened")
        assert status.is_paid

    def test_overpayment_is_paid(self):
        """Paying more than the total counts as paid."""
        status = ResolvedOrderStatus("ref", Decimal("100.01"), Decimal("100"), "opened")
        assert status.is_paid

    def test_one_cent_short_is_not_paid(self):
        """One cent short is not paid."""
        status = ResolvedOrderStatus("ref", Decimal("99.99"), Decimal("100"), "opened")
        assert not status.is_paid

    def test_zero_total_is_not_paid(self):
        """A zero total never counts as paid."""
        status = ResolvedOrderStatus("ref", Decimal("0"), Decimal("0"), "opened")
        assert not status.is_paid

    def test_missing_amounts_not_paid(self):
        """Absent amounts are not paid."""
        assert not ResolvedOrderStatus("ref", None, None, "opened").is_paid

    def test_float_amounts_parsed_exactly(self):
        """0.1 + 0.2 style float noise must not defeat the comparison."""
        assert to_decimal(0.3) == Decimal("0.3")
        assert to_decimal("1000.50") == Decimal("1000.50")
        assert to_decimal("abc") is None
        assert to_decimal(None) is None

    def test_from_merchant_order_prefers_approved_payment(self):
        """The approved payment id is picked from the list."""
        data = merchant_order_payload(
            ORDER_ID,
            payments=[{"id": 1, "status": "rejected"}, {"id": 2, "status": "approved"}],
        )
        status = ResolvedOrderStatus.from_merchant_order(data)
        assert status.payment_id == "2"
        assert status.external_reference == ORDER_ID
        assert status.merchant_order_id == "555"

    def test_from_merchant_order_without_payments(self):
        """No payments means no payment id."""
        status = ResolvedOrderStatus.from_merchant_order(merchant_order_payload(ORDER_ID, payments=[]))
        assert status.payment_id is None


class TestMercadoPagoService:
    """Tests for the processor client."""

    @pytest.mark.asyncio
    async def test_get_payment(self, mercadopago, mp_stub):
        """A payment is fetched by id."""
        mp_stub.payments["9001"] = (200, {"id": 9001, "status": "approved"})
        payment = await mercadopago.get_payment("9001")
        assert payment["status"] == "approved"

    @pytest.mark.asyncio
    async def test_get_payment_not_found_returns_none(self, mercadopago, mp_stub):
        """A missing payment is retried then reported as None."""
        assert await mercadopago.get_payment("404") is None
        assert mp_stub.count("/v1/payments/") == 3

    @pytest.mark.asyncio
    async def test_merchant_order_retried_then_succeeds(self, mercadopago, mp_stub):
        """A transient 500 is retried."""
        mp_stub.merchant_orders["555"] = [
            (500, {}),
            (200, merchant_order_payload(ORDER_ID)),
        ]
        data = await mercadopago.get_merchant_order("555")
        assert data["external_reference"] == ORDER_ID
        assert mp_stub.count("/merchant_orders/") == 2

    @pytest.mark.asyncio
    async def test_merchant_order_fails_after_three_attempts(self, mercadopago, mp_stub):
        """Persistent errors raise after three attempts."""
        mp_stub.merchant_orders["555"] = (500, {})
        with pytest.raises(PaymentProcessorError) as exc_info:
            await mercadopago.get_merchant_order("555")
        assert exc_info.value.status_code == 500
        assert mp_stub.count("/merchant_orders/") == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [["unexpected"], "paid", 42, None])
    async def test_non_object_body_is_processor_error(self, mercadopago, mp_stub, payload):
        """A 200 whose JSON is not an object is treated as a failed fetch."""
        mp_stub.merchant_orders["555"] = (200, payload)
        with pytest.raises(PaymentProcessorError, match="expected an object"):
            await mercadopago.get_merchant_order("555")
        assert mp_stub.count("/merchant_orders/") == 3

    @pytest.mark.asyncio
    async def test_invalid_json_is_processor_error(self, mercadopago, mp_stub):
        """A 200 with a non-JSON body is treated as a failed fetch."""
        mp_stub.merchant_orders["555"] = (200, b"<html>maintenance</html>")
        with pytest.raises(PaymentProcessorError, match="invalid JSON"):
            await mercadopago.get_merchant_order("555")
        assert mp_stub.count("/merchant_orders/") == 3

    @pytest.mark.asyncio
    async def test_non_object_payment_not_ready(self, mercadopago, mp_stub):
        """A malformed payment body is reported as not retrievable."""
        mp_stub.payments["9001"] = (200, ["unexpected"])
        assert await mercadopago.get_payment("9001") is None


class TestPaymentResolver:
    """Tests for turning notifications into order status."""

    @pytest.mark.asyncio
    async def test_merchant_order_topic(self, mercadopago, mp_stub):
        """A merchant_order notification resolves directly."""
        mp_stub.merchant_orders["555"] = (200, merchant_order_payload(ORDER_ID))
        resolution = await PaymentResolver(mercadopago).resolve("merchant_order", "555")

        assert resolution.ready
        assert resolution.status.external_reference == ORDER_ID
        assert resolution.status.payment_id == "9001"

    @pytest.mark.asyncio
    async def test_approved_payment_follows_order_link(self, mercadopago, mp_stub):
        """An approved payment is followed to its merchant order."""
        mp_stub.payments["9002"] = (200, {"id": 9002, "status": "approved", "order": {"id": 555}})
        mp_stub.merchant_orders["555"] = (200, merchant_order_payload(ORDER_ID))

        resolution = await PaymentResolver(mercadopago).resolve("payment", "9002")

        assert resolution.ready
        # The notified payment wins over the merchant order's list
        assert resolution.status.payment_id == "9002"

    @pytest.mark.asyncio
    async def test_payment_not_ready(self, mercadopago, mp_stub):
        """A payment not retrievable yet is reported as not ready."""
        resolution = await PaymentResolver(mercadopago).resolve("payment", "404")
        assert resolution.outcome is WebhookStatus.PAYMENT_NOT_READY
        assert not resolution.ready

    @pytest.mark.asyncio
    async def test_payment_not_approved(self, mercadopago, mp_stub):
        """A pending payment stops before the merchant order fetch."""
        mp_stub.payments["9003"] = (200, {"id": 9003, "status": "pending", "order": {"id": 555}})
        resolution = await PaymentResolver(mercadopago).resolve("payment", "9003")
        assert resolution.outcome is WebhookStatus.NOT_APPROVED
        assert mp_stub.count("/merchant_orders/") == 0

    @pytest.mark.asyncio
    async def test_payment_without_merchant_order(self, mercadopago, mp_stub):
        """An approved payment without an order link is reported."""
        mp_stub.payments["9004"] = (200, {"id": 9004, "status": "approved"})
        resolution = await PaymentResolver(mercadopago).resolve("payment", "9004")
        assert resolution.outcome is WebhookStatus.NO_MERCHANT_ORDER

    @pytest.mark.asyncio
    async def test_other_topic_ignored(self, mercadopago, mp_stub):
        """Unknown topics make no processor calls."""
        resolution = await PaymentResolver(mercadopago).resolve("chargebacks", "1")
        assert resolution.outcome is WebhookStatus.IGNORED_TOPIC
        assert mp_stub.calls == []

    @pytest.mark.asyncio
    async def test_merchant_order_failure_propagates(self, mercadopago, mp_stub):
        """Merchant order fetch errors reach the caller."""
        mp_stub.merchant_orders["555"] = (503, {})
        with pytest.raises(PaymentProcessorError):
            await PaymentResolver(mercadopago).resolve("merchant_order", "555")
