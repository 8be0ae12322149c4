"""
Tests for the Mercado Pago REST client.

Uses httpx.MockTransport so no request leaves the process.
"""

import json

import httpx
import pytest

from atelie.config import get_settings
from atelie.integrations.mercadopago.client import (
    MercadoPagoClient,
    MercadoPagoAPIError,
    MercadoPagoPayment,
    get_mercadopago_client,
)

API_BASE = "https://api.mercadopago.test"


def _client(handler):
    return MercadoPagoClient(
        access_token="TEST-token",
        api_base=API_BASE,
        timeout_seconds=1,
        transport=httpx.MockTransport(handler),
    )


PAYMENT_BODY = {
    "id": 123456789,
    "status": "approved",
    "status_detail": "accredited",
    "external_reference": "user-1",
    "date_approved": "2024-05-01T12:30:00.000-04:00",
    "payer": {"email": "ana@example.com"},
    "transaction_amount": 49.9,
}


class TestPaymentFromApi:

    def test_parses_payment(self):
        payment = MercadoPagoPayment.from_api(PAYMENT_BODY)

        assert payment.id == "123456789"
        assert payment.is_approved
        assert payment.payer_email == "ana@example.com"
        assert payment.date_approved.utcoffset().total_seconds() == -4 * 3600
        assert payment.raw["transaction_amount"] == 49.9

    def test_missing_payer(self):
        payment = MercadoPagoPayment.from_api({"id": 1, "status": "pending", "payer": None})

        assert payment.payer_email is None
        assert not payment.is_approved

    @pytest.mark.parametrize("payer", [
        "ana@example.com",
        ["ana@example.com"],
        42,
        {"email": 42},
        {"email": "   "},
    ])
    def test_malformed_payer_has_no_email(self, payer):
        payment = MercadoPagoPayment.from_api({"id": 1, "status": "approved", "payer": payer})

        assert payment.is_approved
        assert payment.payer_email is None


class TestGetPayment:

    @pytest.mark.asyncio
    async def test_fetches_payment(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json=PAYMENT_BODY)

        async with _client(handler) as client:
            payment = await client.get_payment("123456789")

        assert seen == {"path": "/v1/payments/123456789", "auth": "Bearer TEST-token"}
        assert payment.status == "approved"
        assert payment.payer_email == "ana@example.com"

    @pytest.mark.asyncio
    async def test_string_payer_is_parsed(self):
        body = dict(PAYMENT_BODY, payer="ana@example.com")

        async with _client(lambda request: httpx.Response(200, json=body)) as client:
            payment = await client.get_payment("123456789")

        assert payment.is_approved
        assert payment.payer_email is None

    @pytest.mark.asyncio
    async def test_not_found_returns_none(self):
        async with _client(lambda request: httpx.Response(404, json={"message": "not found"})) as client:
            assert await client.get_payment("1") is None

    @pytest.mark.asyncio
    async def test_payment_without_status_returns_none(self):
        async with _client(lambda request: httpx.Response(200, json={"id": 1})) as client:
            assert await client.get_payment("1") is None

    @pytest.mark.asyncio
    async def test_server_error_is_retryable(self):
        async with _client(lambda request: httpx.Response(502, text="bad gateway")) as client:
            with pytest.raises(MercadoPagoAPIError) as exc_info:
                await client.get_payment("1")

        assert exc_info.value.status_code == 502
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_bad_request_is_not_retryable(self):
        async with _client(lambda request: httpx.Response(400, json={"message": "invalid id"})) as client:
            with pytest.raises(MercadoPagoAPIError) as exc_info:
                await client.get_payment("abc")

        assert exc_info.value.status_code == 400
        assert exc_info.value.response == {"message": "invalid id"}
        assert not exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with _client(handler) as client:
            with pytest.raises(MercadoPagoAPIError) as exc_info:
                await client.get_payment("1")

        assert exc_info.value.status_code is None
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_connection_error_is_retryable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(MercadoPagoAPIError) as exc_info:
                await client.get_payment("1")

        assert exc_info.value.retryable


class TestCreatePreference:

    @pytest.mark.asyncio
    async def test_creates_preference(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={
                "id": "pref-1",
                "init_point": "https://mp.test/checkout?pref_id=pref-1",
                "sandbox_init_point": "https://sandbox.mp.test/checkout?pref_id=pref-1",
            })

        async with _client(handler) as client:
            preference = await client.create_preference(
                title="Plano Ateliê",
                unit_price_cents=4990,
                payer_email="ana@example.com",
                external_reference="user-1",
                notification_url="https://api.atelie.test/api/webhooks/mercadopago",
            )

        assert seen["path"] == "/checkout/preferences"
        assert seen["body"]["items"][0]["unit_price"] == 49.9
        assert seen["body"]["items"][0]["currency_id"] == "BRL"
        assert seen["body"]["payer"] == {"email": "ana@example.com"}
        assert seen["body"]["external_reference"] == "user-1"
        assert seen["body"]["notification_url"].endswith("/api/webhooks/mercadopago")
        assert preference.id == "pref-1"
        assert preference.init_point.endswith("pref-1")

    @pytest.mark.asyncio
    async def test_rejected_preference_raises(self):
        async with _client(lambda request: httpx.Response(401, json={"message": "invalid token"})) as client:
            with pytest.raises(MercadoPagoAPIError):
                await client.create_preference(
                    title="Plano Ateliê",
                    unit_price_cents=4990,
                    payer_email="ana@example.com",
                    external_reference="user-1",
                )


class TestClientFactory:

    def test_requires_access_token(self, monkeypatch):
        monkeypatch.delenv("MERCADOPAGO_ACCESS_TOKEN")
        get_settings.cache_clear()

        with pytest.raises(ValueError):
            get_mercadopago_client()

    @pytest.mark.asyncio
    async def test_legacy_env_var_name(self, monkeypatch):
        monkeypatch.delenv("MERCADOPAGO_ACCESS_TOKEN")
        monkeypatch.setenv("MERCADO_PAGO_ACCESS_TOKEN", "APP_USR-legacy")
        monkeypatch.setenv("MERCADOPAGO_API_BASE", "https://api.example.test/")
        get_settings.cache_clear()

        client = get_mercadopago_client()
        try:
            assert client.api_base == "https://api.example.test"
        finally:
            await client.close()
