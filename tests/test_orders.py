"""
Tests for checkout and order lookup endpoints.
"""

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select, func

from app.config import settings
from app.fsm.states import OrderStatus
from app.models.order import Order
from app.services.download_gate import DownloadGate

from factories import create_order, create_photos


def _cart(*photos, quantity=1):
    return [{"photoId": str(photo.id), "quantity": quantity} for photo in photos]


async def _order_count(session_maker) -> int:
    async with session_maker() as session:
        return (await session.execute(select(func.count()).select_from(Order))).scalar_one()


class TestCreatePaymentPreference:
    """Tests for checkout."""

    @pytest.mark.asyncio
    async def test_creates_pending_order_and_preference(self, client, db, session_maker, mp_stub, metrics):
        """Checkout stores a pending order and returns the preference."""
        photos = await create_photos(db, count=2, price="500.00")

        response = await client.post(
            "/create-payment-preference",
            json={"cart": _cart(*photos), "customerEmail": "Parent@Example.com"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["preference_id"] == "pref-123"
        assert body["init_point"] == "https://sandbox.mp.test/checkout/pref-123"

        async with session_maker() as session:
            order = (await session.execute(
                select(Order).where(Order.id == uuid.UUID(body["orderId"]))
            )).scalar_one()
            assert order.status == OrderStatus.PENDING.value
            assert order.customer_email == "parent@example.com"
            assert order.total_amount == Decimal("1000.00")
            assert order.photographer_id == "photographer-1"
            assert {item.photo_id for item in order.items} == {p.id for p in photos}

        preference = mp_stub.preferences[0]
        assert preference["external_reference"] == body["orderId"]
        assert preference["notification_url"] == f"{settings.backend_url}/webhooks/mercadopago"
        assert preference["auto_return"] == "approved"
        assert body["orderId"] in preference["back_urls"]["success"]
        assert metrics.get("orders_created") == 1

    @pytest.mark.asyncio
    async def test_total_uses_stored_prices_and_quantities(self, client, db, session_maker):
        """The total comes from stored prices, not the client."""
        photos = await create_photos(db, count=1, price="750.50")

        response = await client.post(
            "/create-payment-preference",
            json={"cart": _cart(photos[0], quantity=2), "customerEmail": "parent@example.com"},
        )

        async with session_maker() as session:
            order = await session.get(Order, uuid.UUID(response.json()["orderId"]))
            assert order.total_amount == Decimal("1501.00")

    @pytest.mark.asyncio
    async def test_empty_cart_rejected(self, client, mp_stub):
        """An empty cart is rejected."""
        response = await client.post(
            "/create-payment-preference",
            json={"cart": [], "customerEmail": "parent@example.com"},
        )
        assert response.status_code == 400
        assert mp_stub.preferences == []

    @pytest.mark.asyncio
    async def test_unknown_photo_rejected(self, client, session_maker):
        """A cart with an unknown photo is rejected."""
        response = await client.post(
            "/create-payment-preference",
            json={"cart": [{"photoId": str(uuid.uuid4())}], "customerEmail": "parent@example.com"},
        )
        assert response.status_code == 404
        assert await _order_count(session_maker) == 0

    @pytest.mark.asyncio
    async def test_processor_failure_keeps_no_order(self, client, db, session_maker, mp_stub):
        """A failed preference leaves no order behind."""
        photos = await create_photos(db, count=1)
        mp_stub.preference_status = 400

        response = await client.post(
            "/create-payment-preference",
            json={"cart": _cart(*photos), "customerEmail": "parent@example.com"},
        )

        assert response.status_code == 502
        assert await _order_count(session_maker) == 0


class TestOrderDetails:
    """Tests for the order details route."""

    @pytest.mark.asyncio
    async def test_pending_order_has_no_photos(self, client, db):
        """A pending order lists no downloadable photos."""
        photos = await create_photos(db)
        order = await create_order(db, photos)

        response = await client.get(f"/order-details/{order.id}/parent@example.com")

        assert response.status_code == 200
        body = response.json()
        assert body["order"]["status"] == "pending"
        assert body["photos"] == []

    @pytest.mark.asyncio
    async def test_paid_order_lists_photos_and_downloads(self, client, db):
        """A paid order lists photos with remaining downloads."""
        photos = await create_photos(db)
        order = await create_order(db, photos, status=OrderStatus.PAID)
        await DownloadGate(db, max_downloads=3).authorize(order.id, "parent@example.com", photos[0].id)

        response = await client.get(f"/order-details/{order.id}/PARENT@example.com")

        assert response.status_code == 200
        by_id = {p["id"]: p for p in response.json()["photos"]}
        assert by_id[str(photos[0].id)]["downloads_used"] == 1
        assert by_id[str(photos[0].id)]["downloads_remaining"] == 2
        assert by_id[str(photos[1].id)]["downloads_used"] == 0
        assert by_id[str(photos[1].id)]["watermarked_url"].endswith(photos[1].watermarked_file_path)

    @pytest.mark.asyncio
    async def test_wrong_email_not_found(self, client, db):
        """A wrong email returns 404."""
        photos = await create_photos(db)
        order = await create_order(db, photos, status=OrderStatus.PAID)

        response = await client.get(f"/order-details/{order.id}/other@example.com")

        assert response.status_code == 404
