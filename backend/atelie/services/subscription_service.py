"""
Subscription self-service for ceramistas.

Orchestrates:
- Current subscription lookup
- Checkout preference creation on Mercado Pago
- Cancel (active -> canceled)
- Reactivate (canceled -> active, only within the paid period)

Granting a new paid period is left to the payment webhook.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from atelie.config import Settings, get_settings
from atelie.integrations.mercadopago.client import MercadoPagoClient, MercadoPagoAPIError
from atelie.models.profile import Profile
from atelie.models.subscription import Subscription, SubscriptionStatus, is_valid_transition
from atelie.repositories.subscription_repository import SubscriptionRepository

logger = logging.getLogger(__name__)


@dataclass
class SubscriptionInfo:
    """Current subscription information for a ceramista."""
    subscription_id: Optional[str]
    plan_id: str
    status: Optional[str]
    is_active: bool
    current_period_end: Optional[datetime]
    canceled_on: Optional[datetime] = None


@dataclass
class CheckoutResult:
    """Result of creating a checkout."""
    checkout_url: str
    preference_id: str
    sandbox_checkout_url: Optional[str] = None


class SubscriptionServiceError(Exception):
    """Base exception for subscription service errors."""
    pass


class SubscriptionNotFoundError(SubscriptionServiceError):
    """No subscription row for the user."""
    pass


class InvalidTransitionError(SubscriptionServiceError):
    """Requested status change is not allowed from the current status."""

    def __init__(self, current_status: str, new_status: str):
        super().__init__(f"Cannot change subscription from {current_status} to {new_status}")
        self.current_status = current_status
        self.new_status = new_status


class PaymentRequiredError(SubscriptionServiceError):
    """The paid period is over; a new checkout is needed."""
    pass


class CheckoutUnavailableError(SubscriptionServiceError):
    """Mercado Pago could not create the checkout."""
    pass


class SubscriptionService:
    """Self-service subscription operations for one user."""

    def __init__(self, db_session: Session, settings: Optional[Settings] = None):
        self.db = db_session
        self.settings = settings or get_settings()
        self.subscriptions = SubscriptionRepository(db_session)

    def _get_subscription(self, user_id: str) -> Subscription:
        subscription = self.subscriptions.get_for_user(user_id)
        if subscription is None:
            raise SubscriptionNotFoundError(f"No subscription for user {user_id}")
        return subscription

    def _transition(self, subscription: Subscription, new_status: str) -> str:
        old_status = subscription.status
        if not is_valid_transition(old_status, new_status) or old_status == new_status:
            logger.warning("Rejected subscription transition", extra={
                "user_id": subscription.user_id,
                "from_status": old_status,
                "to_status": new_status,
            })
            raise InvalidTransitionError(old_status, new_status)
        subscription.status = new_status
        return old_status

    def get_subscription_info(self, user_id: str) -> SubscriptionInfo:
        subscription = self.subscriptions.get_for_user(user_id)
        if subscription is None:
            return SubscriptionInfo(
                subscription_id=None,
                plan_id=self.settings.subscription_plan_id,
                status=None,
                is_active=False,
                current_period_end=None,
            )
        return SubscriptionInfo(
            subscription_id=subscription.id,
            plan_id=subscription.plan_id,
            status=subscription.status,
            is_active=subscription.is_active,
            current_period_end=subscription.period_end_utc,
            canceled_on=subscription.canceled_on,
        )

    async def create_checkout(
        self,
        profile: Profile,
        payment_client: MercadoPagoClient,
    ) -> CheckoutResult:
        """
        Create a Mercado Pago checkout for the plan.

        Raises:
            InvalidTransitionError: Subscription is already active
            CheckoutUnavailableError: Mercado Pago call failed
        """
        subscription = self.subscriptions.get_for_user(profile.id)
        if subscription is not None and subscription.is_active:
            raise InvalidTransitionError(subscription.status, SubscriptionStatus.ACTIVE.value)

        try:
            preference = await payment_client.create_preference(
                title=self.settings.subscription_plan_name,
                unit_price_cents=self.settings.subscription_price_cents,
                payer_email=profile.email,
                external_reference=profile.id,
                notification_url=self.settings.mercadopago_notification_url,
            )
        except MercadoPagoAPIError as e:
            logger.error("Checkout creation failed", extra={
                "user_id": profile.id,
                "status_code": e.status_code,
                "error": str(e),
            })
            raise CheckoutUnavailableError("Payment processor unavailable") from e

        logger.info("Checkout created", extra={
            "user_id": profile.id,
            "preference_id": preference.id,
        })

        return CheckoutResult(
            checkout_url=preference.init_point,
            preference_id=preference.id,
            sandbox_checkout_url=preference.sandbox_init_point,
        )

    def cancel_subscription(self, user_id: str) -> Subscription:
        """
        Cancel an active subscription. The paid period is kept so the
        ceramista can reactivate before it ends.
        """
        subscription = self._get_subscription(user_id)
        old_status = self._transition(subscription, SubscriptionStatus.CANCELED.value)
        subscription.canceled_on = datetime.now(timezone.utc)
        self.db.commit()

        logger.info("Subscription canceled", extra={
            "user_id": user_id,
            "subscription_id": subscription.id,
            "old_status": old_status,
        })
        return subscription

    def reactivate_subscription(self, user_id: str) -> Subscription:
        """
        Reactivate a canceled subscription within its paid period.

        Raises:
            InvalidTransitionError: Subscription is not canceled
            PaymentRequiredError: The paid period has ended
        """
        subscription = self._get_subscription(user_id)
        if subscription.status != SubscriptionStatus.CANCELED.value:
            raise InvalidTransitionError(subscription.status, SubscriptionStatus.ACTIVE.value)
        if not subscription.has_paid_time_left:
            logger.info("Reactivation refused, paid period over", extra={
                "user_id": user_id,
                "subscription_id": subscription.id,
            })
            raise PaymentRequiredError("Paid period ended, a new payment is required")

        self._transition(subscription, SubscriptionStatus.ACTIVE.value)
        subscription.canceled_on = None
        self.db.commit()

        logger.info("Subscription reactivated", extra={
            "user_id": user_id,
            "subscription_id": subscription.id,
        })
        return subscription
