"""
Mercado Pago REST API client.

Used to re-fetch authoritative payment state after a webhook notification
and to create checkout preferences for the ceramista plan.

Documentation: https://www.mercadopago.com.br/developers/en/reference
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any

import httpx

from atelie.config import get_settings

logger = logging.getLogger(__name__)

PAYMENT_STATUS_APPROVED = "approved"

# Upstream status codes worth a redelivery
RETRYABLE_STATUS_CODES = frozenset({401, 408, 429})


@dataclass
class MercadoPagoPayment:
    """Represents a Mercado Pago payment resource."""
    id: str
    status: str
    payer_email: Optional[str] = None
    status_detail: Optional[str] = None
    external_reference: Optional[str] = None
    date_approved: Optional[datetime] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_approved(self) -> bool:
        return self.status == PAYMENT_STATUS_APPROVED

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "MercadoPagoPayment":
        payer = data.get("payer")
        if not isinstance(payer, dict):
            payer = {}
        email = payer.get("email")
        return cls(
            id=str(data.get("id", "")),
            status=data["status"],
            payer_email=email if isinstance(email, str) and email.strip() else None,
            status_detail=data.get("status_detail"),
            external_reference=data.get("external_reference"),
            date_approved=_parse_datetime(data.get("date_approved")),
            raw=data,
        )


@dataclass
class CheckoutPreference:
    """Result of creating a checkout preference."""
    id: str
    init_point: str
    sandbox_init_point: Optional[str] = None


class MercadoPagoError(Exception):
    """Base exception for Mercado Pago API errors."""
    pass


class MercadoPagoAPIError(MercadoPagoError):
    """Error communicating with Mercado Pago."""

    def __init__(self, message: str, status_code: Optional[int] = None, response: Optional[dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response

    @property
    def retryable(self) -> bool:
        """Timeouts, transport errors, 5xx and throttling are transient."""
        if self.status_code is None:
            return True
        return self.status_code >= 500 or self.status_code in RETRYABLE_STATUS_CODES


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable Mercado Pago timestamp", extra={"value": value})
        return None


class MercadoPagoClient:
    """
    Client for the Mercado Pago REST API.

    Handles:
    - Fetching payments by id
    - Creating checkout preferences

    SECURITY: The access token is a server-held secret and never leaves
    this process.
    """

    def __init__(
        self,
        access_token: str,
        api_base: str = "https://api.mercadopago.com",
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            access_token: Mercado Pago access token
            api_base: API base URL
            timeout_seconds: Upper bound for every request
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        if not access_token:
            raise ValueError("access_token is required")

        self.api_base = api_base.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.api_base,
            timeout=httpx.Timeout(timeout_seconds),
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("Mercado Pago API timeout", extra={"path": path, "error": str(e)})
            raise MercadoPagoAPIError(f"Request timeout: {e}")
        except httpx.RequestError as e:
            logger.error("Mercado Pago API request error", extra={"path": path, "error": str(e)})
            raise MercadoPagoAPIError(f"Request error: {e}")

    @staticmethod
    def _raise_for_status(response: httpx.Response, path: str) -> None:
        if response.status_code < 400:
            return
        logger.error("Mercado Pago API error", extra={
            "path": path,
            "status_code": response.status_code,
            "response_text": response.text[:500],
        })
        try:
            body = response.json() if response.text else None
        except ValueError:
            body = None
        raise MercadoPagoAPIError(
            f"Mercado Pago API error: {response.status_code}",
            status_code=response.status_code,
            response=body,
        )

    async def get_payment(self, payment_id: str) -> Optional[MercadoPagoPayment]:
        """
        Fetch a payment by id.

        Args:
            payment_id: Mercado Pago payment id

        Returns:
            MercadoPagoPayment, or None if the payment does not exist or the
            response carries no status

        Raises:
            MercadoPagoAPIError: On transport errors, timeouts and non-404
                error responses
        """
        path = f"/v1/payments/{payment_id}"
        response = await self._request("GET", path)

        if response.status_code == 404:
            logger.info("Mercado Pago payment not found", extra={"payment_id": payment_id})
            return None

        self._raise_for_status(response, path)

        try:
            data = response.json()
        except ValueError:
            raise MercadoPagoAPIError(
                "Invalid JSON from Mercado Pago",
                status_code=response.status_code,
            )

        if not isinstance(data, dict) or not data.get("status"):
            return None

        return MercadoPagoPayment.from_api(data)

    async def create_preference(
        self,
        title: str,
        unit_price_cents: int,
        payer_email: str,
        external_reference: str,
        notification_url: Optional[str] = None,
        currency_id: str = "BRL",
    ) -> CheckoutPreference:
        """
        Create a checkout preference for a single item.

        Args:
            title: Item title shown at checkout
            unit_price_cents: Price in cents
            payer_email: Email of the paying user, used later to reconcile
            external_reference: Our user id
            notification_url: Webhook URL Mercado Pago will call
            currency_id: ISO currency code

        Returns:
            CheckoutPreference with the init_point to redirect to
        """
        payload = {
            "items": [{
                "title": title,
                "quantity": 1,
                "currency_id": currency_id,
                "unit_price": round(unit_price_cents / 100, 2),
            }],
            "payer": {"email": payer_email},
            "external_reference": external_reference,
        }
        if notification_url:
            payload["notification_url"] = notification_url

        path = "/checkout/preferences"
        response = await self._request("POST", path, json=payload)
        self._raise_for_status(response, path)

        data = response.json()
        logger.info("Checkout preference created", extra={
            "preference_id": data.get("id"),
            "external_reference": external_reference,
        })

        return CheckoutPreference(
            id=str(data.get("id", "")),
            init_point=data.get("init_point", ""),
            sandbox_init_point=data.get("sandbox_init_point"),
        )


def get_mercadopago_client() -> MercadoPagoClient:
    """
    Factory function to create a MercadoPagoClient from settings.

    Raises:
        ValueError: If MERCADOPAGO_ACCESS_TOKEN is not configured
    """
    settings = get_settings()
    return MercadoPagoClient(
        access_token=settings.mercadopago_access_token,
        api_base=settings.mercadopago_api_base,
        timeout_seconds=settings.mercadopago_timeout_seconds,
    )
