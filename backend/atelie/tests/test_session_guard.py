"""
Tests for the session/role guard.

Tests cover:
- Destination resolution for every role and subscription status
- Typed profile projection
- Fresh reads after a webhook reconciliation
- Guard dependencies on the API (401/402/403/404)
"""

from datetime import datetime, timezone, timedelta

import pytest

from atelie.models.profile import ProfileRole
from atelie.models.subscription import Subscription, SubscriptionStatus
from atelie.services.payment_webhook_handler import PaymentWebhookHandler
from atelie.services.session_guard import (
    CeramistaProfile,
    CompradorProfile,
    Destination,
    GuardError,
    SessionGuard,
    resolve_destination,
)


def _ceramista(subscription_status, current_period_end=None):
    return CeramistaProfile(
        id="user-1",
        email="ana@example.com",
        display_name="Ana",
        subscription_status=subscription_status,
        current_period_end=current_period_end,
    )


# =============================================================================
# Destination resolution
# =============================================================================

class TestResolveDestination:

    def test_comprador_goes_to_catalog(self):
        profile = CompradorProfile(id="user-2", email="bia@example.com", display_name="Bia")
        assert resolve_destination(profile) == Destination.CATALOG

    @pytest.mark.parametrize("subscription_status", [None, "pending", "canceled"])
    def test_ceramista_without_active_plan_goes_to_subscribe(self, subscription_status):
        assert resolve_destination(_ceramista(subscription_status)) == Destination.SUBSCRIBE

    def test_ceramista_with_active_plan_goes_to_dashboard(self):
        assert resolve_destination(_ceramista("active")) == Destination.DASHBOARD

    def test_active_plan_within_paid_period_goes_to_dashboard(self):
        period_end = datetime.now(timezone.utc) + timedelta(days=5)
        assert resolve_destination(_ceramista("active", period_end)) == Destination.DASHBOARD

    def test_active_plan_with_elapsed_period_goes_to_subscribe(self):
        period_end = datetime.now(timezone.utc) - timedelta(days=90)
        assert resolve_destination(_ceramista("active", period_end)) == Destination.SUBSCRIBE


class TestSessionGuard:

    def test_unknown_identity_raises(self, db_session):
        with pytest.raises(GuardError) as exc_info:
            SessionGuard(db_session).evaluate("missing-user")
        assert exc_info.value.user_id == "missing-user"

    def test_comprador_profile_has_no_ceramista_fields(self, db_session, make_profile):
        profile = make_profile("bia@example.com", role=ProfileRole.COMPRADOR)

        decision = SessionGuard(db_session).evaluate(profile.id)

        assert isinstance(decision.profile, CompradorProfile)
        assert decision.destination == Destination.CATALOG
        assert not hasattr(decision.profile, "subscription_status")

    def test_comprador_subscription_row_is_ignored(self, db_session, make_profile):
        profile = make_profile("bia@example.com", role=ProfileRole.COMPRADOR)
        db_session.add(Subscription(
            user_id=profile.id,
            status=SubscriptionStatus.ACTIVE.value,
            plan_id="premium",
        ))
        db_session.commit()

        assert SessionGuard(db_session).evaluate(profile.id).destination == Destination.CATALOG

    def test_pending_ceramista_goes_to_subscribe(self, db_session, make_profile):
        profile = make_profile("ana@example.com")

        decision = SessionGuard(db_session).evaluate(profile.id)

        assert isinstance(decision.profile, CeramistaProfile)
        assert decision.profile.subscription_status == SubscriptionStatus.PENDING.value
        assert decision.destination == Destination.SUBSCRIBE

    def test_elapsed_active_subscription_goes_to_subscribe(self, db_session, make_profile):
        profile = make_profile(
            "ana@example.com",
            subscription_status=SubscriptionStatus.ACTIVE,
            current_period_end=datetime.now(timezone.utc) - timedelta(days=90),
        )

        decision = SessionGuard(db_session).evaluate(profile.id)

        assert decision.profile.subscription_status == SubscriptionStatus.ACTIVE.value
        assert decision.destination == Destination.SUBSCRIBE

    @pytest.mark.asyncio
    async def test_reconciliation_is_visible_on_next_evaluation(
        self, db_session, make_profile, make_payment, payment_client, test_settings
    ):
        profile = make_profile("ana@example.com")
        guard = SessionGuard(db_session)
        assert guard.evaluate(profile.id).destination == Destination.SUBSCRIBE

        payment_client.get_payment.return_value = make_payment("900")
        handler = PaymentWebhookHandler(db_session, payment_client, settings=test_settings)
        await handler.handle_notification({"data": {"id": "900"}})

        assert guard.evaluate(profile.id).destination == Destination.DASHBOARD


# =============================================================================
# API
# =============================================================================

class TestSessionDestinationRoute:

    def test_missing_token_returns_401(self, client):
        response = client.get("/api/session/destination")
        assert response.status_code == 401

    def test_identity_without_profile_returns_404(self, client, auth_headers):
        response = client.get("/api/session/destination", headers=auth_headers("no-profile"))

        assert response.status_code == 404
        assert response.json()["detail"] == "profile_not_found"

    def test_comprador_destination(self, client, make_profile, auth_headers):
        profile = make_profile("bia@example.com", role=ProfileRole.COMPRADOR)

        response = client.get("/api/session/destination", headers=auth_headers(profile.id))

        assert response.status_code == 200
        body = response.json()
        assert body["destination"] == "catalog"
        assert body["role"] == "comprador"

    def test_ceramista_destination_follows_webhook(
        self, client, make_profile, make_payment, payment_client, auth_headers
    ):
        profile = make_profile("ana@example.com")
        headers = auth_headers(profile.id)

        assert client.get("/api/session/destination", headers=headers).json()["destination"] == "subscribe"

        payment_client.get_payment.return_value = make_payment("901")
        assert client.post("/api/webhooks/mercadopago", json={"data": {"id": "901"}}).status_code == 200

        body = client.get("/api/session/destination", headers=headers).json()
        assert body["destination"] == "dashboard"
        assert body["profile"]["subscription_status"] == "active"


class TestGuardDependencies:

    def test_comprador_cannot_create_pieces(self, client, make_profile, auth_headers):
        profile = make_profile("bia@example.com", role=ProfileRole.COMPRADOR)

        response = client.post(
            "/api/pieces",
            json={"title": "Vaso", "price_cents": 1000},
            headers=auth_headers(profile.id),
        )

        assert response.status_code == 403
        assert response.json()["detail"] == "ceramista_only"

    def test_pending_ceramista_needs_subscription(self, client, make_profile, auth_headers):
        profile = make_profile("ana@example.com")

        response = client.post(
            "/api/pieces",
            json={"title": "Vaso", "price_cents": 1000},
            headers=auth_headers(profile.id),
        )

        assert response.status_code == 402
        assert response.json()["detail"] == "subscription_required"

    def test_elapsed_subscription_needs_payment(self, client, make_profile, auth_headers):
        profile = make_profile(
            "ana@example.com",
            subscription_status=SubscriptionStatus.ACTIVE,
            current_period_end=datetime.now(timezone.utc) - timedelta(days=1),
        )

        response = client.post(
            "/api/pieces",
            json={"title": "Vaso", "price_cents": 1000},
            headers=auth_headers(profile.id),
        )

        assert response.status_code == 402
        assert response.json()["detail"] == "subscription_required"

    def test_comprador_cannot_see_subscription(self, client, make_profile, auth_headers):
        profile = make_profile("bia@example.com", role=ProfileRole.COMPRADOR)

        response = client.get("/api/subscription", headers=auth_headers(profile.id))

        assert response.status_code == 403
