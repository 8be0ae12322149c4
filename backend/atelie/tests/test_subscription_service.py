"""
Tests for subscription self-service.

Tests cover:
- Subscription info lookup
- Checkout preference creation
- Cancel and reactivate transitions, including the paid-period rule
- The /api/subscription routes
"""

from datetime import datetime, timezone, timedelta

import pytest

from atelie.integrations.mercadopago.client import CheckoutPreference, MercadoPagoAPIError
from atelie.models.profile import ProfileRole
from atelie.models.subscription import SubscriptionStatus
from atelie.services.subscription_service import (
    SubscriptionService,
    SubscriptionNotFoundError,
    InvalidTransitionError,
    PaymentRequiredError,
    CheckoutUnavailableError,
)


def _in_days(days):
    return datetime.now(timezone.utc) + timedelta(days=days)


@pytest.fixture
def service(db_session, test_settings):
    return SubscriptionService(db_session, settings=test_settings)


@pytest.fixture
def preference():
    return CheckoutPreference(
        id="pref-1",
        init_point="https://www.mercadopago.com.br/checkout/v1/redirect?pref_id=pref-1",
        sandbox_init_point="https://sandbox.mercadopago.com.br/checkout/v1/redirect?pref_id=pref-1",
    )


# =============================================================================
# Service
# =============================================================================

class TestSubscriptionInfo:

    def test_info_without_subscription(self, service):
        info = service.get_subscription_info("nobody")

        assert info.subscription_id is None
        assert info.status is None
        assert info.plan_id == "premium"
        assert info.is_active is False

    def test_info_for_active_subscription(self, service, make_profile):
        profile = make_profile(
            "ana@example.com",
            subscription_status=SubscriptionStatus.ACTIVE,
            current_period_end=_in_days(10),
        )

        info = service.get_subscription_info(profile.id)

        assert info.status == "active"
        assert info.is_active is True
        assert info.current_period_end.tzinfo is not None


class TestCheckout:

    @pytest.mark.asyncio
    async def test_creates_preference_for_profile(self, service, make_profile, payment_client, preference):
        profile = make_profile("ana@example.com")
        payment_client.create_preference.return_value = preference

        result = await service.create_checkout(profile, payment_client)

        assert result.checkout_url == preference.init_point
        assert result.preference_id == "pref-1"
        kwargs = payment_client.create_preference.await_args.kwargs
        assert kwargs["payer_email"] == "ana@example.com"
        assert kwargs["external_reference"] == profile.id
        assert kwargs["unit_price_cents"] == 4990

    @pytest.mark.asyncio
    async def test_active_subscription_cannot_checkout(self, service, make_profile, payment_client):
        profile = make_profile("ana@example.com", subscription_status=SubscriptionStatus.ACTIVE)

        with pytest.raises(InvalidTransitionError):
            await service.create_checkout(profile, payment_client)

        payment_client.create_preference.assert_not_called()

    @pytest.mark.asyncio
    async def test_elapsed_active_subscription_can_pay_again(
        self, service, make_profile, payment_client, preference
    ):
        profile = make_profile(
            "ana@example.com",
            subscription_status=SubscriptionStatus.ACTIVE,
            current_period_end=_in_days(-3),
        )
        payment_client.create_preference.return_value = preference

        result = await service.create_checkout(profile, payment_client)

        assert result.preference_id == "pref-1"
        assert service.get_subscription_info(profile.id).is_active is False

    @pytest.mark.asyncio
    async def test_upstream_failure(self, service, make_profile, payment_client):
        profile = make_profile("ana@example.com")
        payment_client.create_preference.side_effect = MercadoPagoAPIError("down", status_code=503)

        with pytest.raises(CheckoutUnavailableError):
            await service.create_checkout(profile, payment_client)


class TestCancelAndReactivate:

    def test_cancel_active(self, service, make_profile):
        period_end = _in_days(12)
        profile = make_profile(
            "ana@example.com",
            subscription_status=SubscriptionStatus.ACTIVE,
            current_period_end=period_end,
        )

        subscription = service.cancel_subscription(profile.id)

        assert subscription.status == SubscriptionStatus.CANCELED.value
        assert subscription.canceled_on is not None
        assert abs(subscription.period_end_utc - period_end) < timedelta(seconds=1)

    @pytest.mark.parametrize("status", [SubscriptionStatus.PENDING, SubscriptionStatus.CANCELED])
    def test_cancel_requires_active(self, service, make_profile, status):
        profile = make_profile("ana@example.com", subscription_status=status)

        with pytest.raises(InvalidTransitionError) as exc_info:
            service.cancel_subscription(profile.id)

        assert exc_info.value.current_status == status.value

    def test_cancel_without_subscription(self, service):
        with pytest.raises(SubscriptionNotFoundError):
            service.cancel_subscription("nobody")

    def test_reactivate_within_paid_period(self, service, make_profile):
        profile = make_profile(
            "ana@example.com",
            subscription_status=SubscriptionStatus.ACTIVE,
            current_period_end=_in_days(5),
        )
        service.cancel_subscription(profile.id)

        subscription = service.reactivate_subscription(profile.id)

        assert subscription.status == SubscriptionStatus.ACTIVE.value
        assert subscription.canceled_on is None

    def test_reactivate_after_period_requires_payment(self, service, make_profile):
        profile = make_profile(
            "ana@example.com",
            subscription_status=SubscriptionStatus.CANCELED,
            current_period_end=_in_days(-1),
        )

        with pytest.raises(PaymentRequiredError):
            service.reactivate_subscription(profile.id)

        assert service.get_subscription_info(profile.id).status == "canceled"

    @pytest.mark.parametrize("status", [SubscriptionStatus.PENDING, SubscriptionStatus.ACTIVE])
    def test_reactivate_requires_canceled(self, service, make_profile, status):
        profile = make_profile("ana@example.com", subscription_status=status, current_period_end=_in_days(5))

        with pytest.raises(InvalidTransitionError):
            service.reactivate_subscription(profile.id)


# =============================================================================
# Routes
# =============================================================================

class TestSubscriptionRoutes:

    def test_get_subscription(self, client, make_profile, auth_headers):
        profile = make_profile("ana@example.com")

        response = client.get("/api/subscription", headers=auth_headers(profile.id))

        assert response.status_code == 200
        assert response.json()["status"] == "pending"
        assert response.json()["is_active"] is False

    def test_checkout(self, client, make_profile, auth_headers, payment_client, preference):
        profile = make_profile("ana@example.com")
        payment_client.create_preference.return_value = preference

        response = client.post("/api/subscription/checkout", headers=auth_headers(profile.id))

        assert response.status_code == 200
        assert response.json()["checkout_url"] == preference.init_point

    def test_checkout_when_active_returns_409(self, client, make_profile, auth_headers):
        profile = make_profile("ana@example.com", subscription_status=SubscriptionStatus.ACTIVE)

        response = client.post("/api/subscription/checkout", headers=auth_headers(profile.id))

        assert response.status_code == 409

    def test_checkout_upstream_failure_returns_502(self, client, make_profile, auth_headers, payment_client):
        profile = make_profile("ana@example.com")
        payment_client.create_preference.side_effect = MercadoPagoAPIError("down")

        response = client.post("/api/subscription/checkout", headers=auth_headers(profile.id))

        assert response.status_code == 502

    def test_cancel_then_reactivate(self, client, make_profile, auth_headers):
        profile = make_profile(
            "ana@example.com",
            subscription_status=SubscriptionStatus.ACTIVE,
            current_period_end=_in_days(20),
        )
        headers = auth_headers(profile.id)

        canceled = client.post("/api/subscription/cancel", headers=headers)
        assert canceled.status_code == 200
        assert canceled.json()["status"] == "canceled"
        assert client.get("/api/session/destination", headers=headers).json()["destination"] == "subscribe"

        reactivated = client.post("/api/subscription/reactivate", headers=headers)
        assert reactivated.status_code == 200
        assert reactivated.json()["status"] == "active"
        assert client.get("/api/session/destination", headers=headers).json()["destination"] == "dashboard"

    def test_cancel_pending_returns_409(self, client, make_profile, auth_headers):
        profile = make_profile("ana@example.com")

        response = client.post("/api/subscription/cancel", headers=auth_headers(profile.id))

        assert response.status_code == 409
        assert response.json()["detail"]["current_status"] == "pending"

    def test_reactivate_expired_returns_402(self, client, make_profile, auth_headers):
        profile = make_profile(
            "ana@example.com",
            subscription_status=SubscriptionStatus.CANCELED,
            current_period_end=_in_days(-2),
        )

        response = client.post("/api/subscription/reactivate", headers=auth_headers(profile.id))

        assert response.status_code == 402

    def test_comprador_cannot_checkout(self, client, make_profile, auth_headers):
        profile = make_profile("bia@example.com", role=ProfileRole.COMPRADOR)

        response = client.post("/api/subscription/checkout", headers=auth_headers(profile.id))

        assert response.status_code == 403
