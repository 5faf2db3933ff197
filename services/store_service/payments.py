"""
Payment gateway adapter for checkout.

Checkout only needs one call: create a charge intent for the order total and
hand the client secret back to the browser to complete payment. The concrete
gateway talks to the Stripe PaymentIntents REST API over httpx.
"""

from dataclasses import dataclass
from typing import Optional

import httpx
from libs.common.config import get_settings
from libs.common.logging import get_logger, get_request_id

logger = get_logger(__name__)


@dataclass
class ChargeIntent:
    """Result of creating a charge intent."""

    intent_id: str
    client_secret: Optional[str]


class PaymentGatewayError(Exception):
    """Raised when the gateway cannot create a charge intent."""

    def __init__(
        self, message: str, status_code: int = None, response_data: dict = None
    ):
        self.message = message
        self.status_code = status_code
        self.response_data = response_data or {}
        super().__init__(message)


class PaymentGateway:
    """Interface used by checkout to request a charge intent."""

    async def create_charge_intent(
        self,
        amount_minor: int,
        currency: str,
        metadata: dict,
        idempotency_key: Optional[str] = None,
    ) -> ChargeIntent:
        raise NotImplementedError


class StripeGateway(PaymentGateway):
    """Async client for the Stripe PaymentIntents API."""

    def __init__(
        self,
        secret_key: str = None,
        base_url: str = None,
        timeout: float = None,
    ):
        settings = get_settings()
        self.secret_key = (
            secret_key if secret_key is not None else settings.STRIPE_SECRET_KEY
        )
        self.base_url = (base_url or settings.STRIPE_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.PAYMENT_TIMEOUT_SECONDS

    @property
    def enabled(self) -> bool:
        key = (self.secret_key or "").strip()
        return bool(key) and not key.startswith("your-")

    def _headers(self, idempotency_key: Optional[str] = None) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        request_id = get_request_id()
        if request_id:
            headers["X-Request-ID"] = request_id
        return headers

    async def create_charge_intent(
        self,
        amount_minor: int,
        currency: str,
        metadata: dict,
        idempotency_key: Optional[str] = None,
    ) -> ChargeIntent:
        if not self.enabled:
            raise PaymentGatewayError("Stripe is not configured")

        form = {"amount": str(amount_minor), "currency": currency.lower()}
        for key, value in metadata.items():
            form[f"metadata[{key}]"] = str(value)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/payment_intents",
                    headers=self._headers(idempotency_key),
                    data=form,
                )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise PaymentGatewayError(f"Stripe request failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}
        # Proxies in front of the API can answer with a bare string or list
        if not isinstance(data, dict):
            data = {"body": data}

        if not response.is_success:
            error = data.get("error")
            if not isinstance(error, dict):
                error = {}
            logger.error(f"Stripe API error: {response.status_code} - {error}")
            raise PaymentGatewayError(
                message=error.get("message", "Unknown Stripe error"),
                status_code=response.status_code,
                response_data=data,
            )

        if not data.get("id"):
            raise PaymentGatewayError(
                "Stripe response missing payment intent id",
                status_code=response.status_code,
                response_data=data,
            )

        return ChargeIntent(intent_id=data["id"], client_secret=data.get("client_secret"))


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency returning the configured gateway."""
    return StripeGateway()
