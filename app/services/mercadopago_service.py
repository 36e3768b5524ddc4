"""
Mercado Pago Service - REST calls to the payment processor.
"""

import logging
from typing import Optional, Dict, Any

import httpx

from app.config import settings
from app.services.retry import retry_async

logger = logging.getLogger(__name__)


class PaymentProcessorError(Exception):
    """The processor could not be reached or answered with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MercadoPagoService:
    """Thin async client for the Mercado Pago API."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token if access_token is not None else settings.mercadopago_access_token
        self.base_url = (base_url or settings.mercadopago_api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self.attempts = attempts if attempts is not None else settings.processor_fetch_attempts
        self.retry_delay = (
            retry_delay if retry_delay is not None else settings.processor_fetch_retry_delay_seconds
        )
        self._transport = transport

        self.headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _get_json(self, path: str) -> Dict[str, Any]:
        """GET once; raise PaymentProcessorError on transport errors and non-2xx."""
        try:
            async with self._client() as client:
                response = await client.get(path)
        except httpx.HTTPError as e:
            raise PaymentProcessorError(f"GET {path} failed: {e}") from e

        if response.status_code != 200:
            raise PaymentProcessorError(
                f"GET {path} returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise PaymentProcessorError(f"GET {path} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise PaymentProcessorError(f"GET {path} returned {type(data).__name__}, expected an object")
        return data

    async def get_payment(self, payment_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a payment by id.

        Returns None while the payment is not retrievable yet (404, or still
        failing after the bounded retries); the processor will notify again.
        """
        try:
            return await retry_async(
                lambda: self._get_json(f"/v1/payments/{payment_id}"),
                attempts=self.attempts,
                delay=self.retry_delay,
                retry_on=(PaymentProcessorError,),
                description=f"Fetch payment {payment_id}",
            )
        except PaymentProcessorError as e:
            logger.warning(f"Payment {payment_id} not retrievable yet: {e}")
            return None

    async def get_merchant_order(self, merchant_order_id: str) -> Dict[str, Any]:
        """Fetch a merchant order by id, retrying transient failures."""
        return await retry_async(
            lambda: self._get_json(f"/merchant_orders/{merchant_order_id}"),
            attempts=self.attempts,
            delay=self.retry_delay,
            retry_on=(PaymentProcessorError,),
            description=f"Fetch merchant_order {merchant_order_id}",
        )

    async def create_preference(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Create a checkout preference. Not retried: a POST is not idempotent."""
        try:
            async with self._client() as client:
                response = await client.post("/checkout/preferences", json=body)
        except httpx.HTTPError as e:
            raise PaymentProcessorError(f"Create preference failed: {e}") from e

        if response.status_code not in (200, 201):
            logger.error(f"Mercado Pago preference error {response.status_code}: {response.text}")
            raise PaymentProcessorError(
                f"Create preference returned {response.status_code}",
                status_code=response.status_code,
            )
        return response.json()


def get_mercadopago_service() -> MercadoPagoService:
    """Dependency for the processor client."""
    return MercadoPagoService()
