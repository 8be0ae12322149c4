"""
Mercado Pago payment webhook handler.

Reconciles local entitlements with the processor's authoritative payment
state:
- Payment id taken from the notification, everything else re-fetched
- Non-approved payments acknowledged without changes
- Approved payments upsert the payer's subscription to active
- Redeliveries of an already-applied payment are no-ops
- Every decision recorded in the payment_notifications ledger

This is the only code path allowed to grant `active` from an external signal.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from atelie.config import Settings, get_settings
from atelie.integrations.mercadopago.client import (
    MercadoPagoClient,
    MercadoPagoPayment,
    MercadoPagoAPIError,
)
from atelie.models.payment_notification import PaymentNotification, NotificationOutcome
from atelie.models.profile import Profile
from atelie.models.subscription import SubscriptionStatus
from atelie.repositories.profile_repository import ProfileRepository
from atelie.repositories.subscription_repository import SubscriptionRepository
from atelie.services.reconciliation_errors import (
    InvalidPayload,
    UpstreamUnavailable,
    PaymentNotFound,
    MissingPayerEmail,
    ProfileNotFound,
    PersistenceFailure,
)

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    """Result of processing one notification."""
    payment_id: str
    outcome: NotificationOutcome
    subscription_id: Optional[str] = None
    user_id: Optional[str] = None
    warning: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        """Response body returned to Mercado Pago."""
        if self.outcome == NotificationOutcome.IGNORED:
            return {"ok": True}
        body = {"success": True}
        if self.warning:
            body["warning"] = self.warning
        return body


def extract_payment_id(payload: Any) -> Optional[str]:
    """
    Extract the payment reference id from a notification payload.

    Mercado Pago sends either {"data": {"id": ...}} (webhooks) or a
    top-level {"id": ...} (legacy IPN). data.id wins when both are present.
    """
    if not isinstance(payload, dict):
        return None

    data = payload.get("data")
    candidate = data.get("id") if isinstance(data, dict) else None
    if candidate in (None, ""):
        candidate = payload.get("id")

    if candidate in (None, "") or isinstance(candidate, (bool, dict, list)):
        return None

    payment_id = str(candidate).strip()
    return payment_id or None


def _payload_hash(payload: Any) -> str:
    payload_str = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(payload_str.encode()).hexdigest()


class PaymentWebhookHandler:
    """
    Handler for Mercado Pago payment notifications.

    A payment id already applied in the ledger is never applied again, so a
    late redelivery cannot undo a cancel or grant a second period. The
    upsert keyed on user id covers concurrent first deliveries.
    """

    def __init__(
        self,
        db_session: Session,
        payment_client: MercadoPagoClient,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize webhook handler.

        Args:
            db_session: Database session
            payment_client: Client used to re-fetch payments
            settings: Settings override (defaults to get_settings())
        """
        self.db = db_session
        self.payment_client = payment_client
        self.settings = settings or get_settings()
        self.profiles = ProfileRepository(db_session)
        self.subscriptions = SubscriptionRepository(db_session)

    def _record_notification(
        self,
        payment_id: str,
        outcome: NotificationOutcome,
        payload: Any,
        payment: Optional[MercadoPagoPayment] = None,
    ) -> None:
        """Add a ledger row to the session. Committed by the caller."""
        self.db.add(PaymentNotification(
            payment_id=payment_id,
            payment_status=payment.status if payment else None,
            payer_email=payment.payer_email if payment else None,
            outcome=outcome.value,
            payload_hash=_payload_hash(payload),
            processed_at=datetime.now(timezone.utc),
        ))

    def _is_duplicate(self, payment_id: str) -> bool:
        """
        Check if this payment already granted a period.

        Args:
            payment_id: Mercado Pago payment id

        Returns:
            True if an earlier delivery was applied, False otherwise
        """
        existing = self.db.query(PaymentNotification.id).filter(
            PaymentNotification.payment_id == payment_id,
            PaymentNotification.outcome == NotificationOutcome.APPLIED.value,
        ).first()

        return existing is not None

    def _commit(self, payment_id: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to commit payment notification", extra={
                "payment_id": payment_id,
                "error": str(e),
            })
            raise PersistenceFailure("Failed to persist notification", payment_id=payment_id)

    async def _fetch_payment(self, payment_id: str) -> MercadoPagoPayment:
        try:
            payment = await self.payment_client.get_payment(payment_id)
        except MercadoPagoAPIError as e:
            if e.retryable:
                logger.warning("Mercado Pago unavailable, asking for redelivery", extra={
                    "payment_id": payment_id,
                    "status_code": e.status_code,
                    "error": str(e),
                })
                raise UpstreamUnavailable("Payment processor unavailable", payment_id=payment_id)
            logger.error("Mercado Pago rejected payment lookup", extra={
                "payment_id": payment_id,
                "status_code": e.status_code,
            })
            raise PaymentNotFound("Payment not found", payment_id=payment_id)

        if payment is None:
            raise PaymentNotFound("Payment not found", payment_id=payment_id)
        return payment

    def _resolve_profile(self, payment: MercadoPagoPayment, payment_id: str) -> Profile:
        profile = self.profiles.find_by_email(payment.payer_email)
        if profile is None:
            raise ProfileNotFound("User not found", payment_id=payment_id)
        return profile

    async def handle_notification(self, payload: Any) -> ReconciliationResult:
        """
        Process one payment notification.

        Args:
            payload: Parsed notification body

        Returns:
            ReconciliationResult (including the acknowledged
            profile-not-found case)

        Raises:
            InvalidPayload: No payment id in the payload
            UpstreamUnavailable: Mercado Pago lookup failed transiently
            PaymentNotFound: Mercado Pago has no usable record
            MissingPayerEmail: Approved payment without payer email
            PersistenceFailure: The entitlement write did not commit
        """
        payment_id = extract_payment_id(payload)
        if not payment_id:
            logger.warning("Payment notification missing id", extra={
                "payload_keys": list(payload.keys()) if isinstance(payload, dict) else None,
            })
            raise InvalidPayload("Missing ID")

        payment = await self._fetch_payment(payment_id)

        logger.info("Payment fetched", extra={
            "payment_id": payment_id,
            "status": payment.status,
            "status_detail": payment.status_detail,
        })

        if not payment.is_approved:
            self._record_notification(payment_id, NotificationOutcome.IGNORED, payload, payment)
            self._commit(payment_id)
            return ReconciliationResult(payment_id=payment_id, outcome=NotificationOutcome.IGNORED)

        if not payment.payer_email:
            logger.error("Approved payment without payer email, needs manual review", extra={
                "payment_id": payment_id,
            })
            self._record_notification(
                payment_id, NotificationOutcome.MISSING_PAYER_EMAIL, payload, payment
            )
            self._commit(payment_id)
            raise MissingPayerEmail("No email", payment_id=payment_id)

        try:
            profile = self._resolve_profile(payment, payment_id)
        except ProfileNotFound as e:
            logger.error("Payer email matches no profile, needs manual reconciliation", extra={
                "payment_id": payment_id,
                "payer_email": payment.payer_email,
            })
            self._record_notification(
                payment_id, NotificationOutcome.PROFILE_NOT_FOUND, payload, payment
            )
            self._commit(payment_id)
            return ReconciliationResult(
                payment_id=payment_id,
                outcome=NotificationOutcome.PROFILE_NOT_FOUND,
                warning=e.error_code,
            )

        return self._apply_approved_payment(profile, payment, payment_id, payload)

    def _apply_approved_payment(
        self,
        profile: Profile,
        payment: MercadoPagoPayment,
        payment_id: str,
        payload: Any,
    ) -> ReconciliationResult:
        existing = self.subscriptions.get_for_user(profile.id)
        # A payment grants at most one period, whatever happened to the row since
        if self._is_duplicate(payment_id) or (
            existing is not None
            and existing.status == SubscriptionStatus.ACTIVE.value
            and existing.external_reference == payment_id
        ):
            logger.info("Payment already applied, redelivery ignored", extra={
                "payment_id": payment_id,
                "user_id": profile.id,
                "subscription_id": existing.id if existing else None,
                "current_status": existing.status if existing else None,
            })
            self._record_notification(payment_id, NotificationOutcome.DUPLICATE, payload, payment)
            self._commit(payment_id)
            return ReconciliationResult(
                payment_id=payment_id,
                outcome=NotificationOutcome.DUPLICATE,
                subscription_id=existing.id if existing else None,
                user_id=profile.id,
            )

        now = datetime.now(timezone.utc)
        fields = {
            "status": SubscriptionStatus.ACTIVE.value,
            "external_reference": payment_id,
            "plan_id": self.settings.subscription_plan_id,
            "current_period_end": now + timedelta(days=self.settings.subscription_period_days),
            "activated_on": now,
            "canceled_on": None,
        }

        # Ledger row rides on the upsert's commit
        self._record_notification(payment_id, NotificationOutcome.APPLIED, payload, payment)
        try:
            subscription = self.subscriptions.upsert_for_user(profile.id, fields)
        except SQLAlchemyError:
            raise PersistenceFailure("Failed to persist subscription", payment_id=payment_id)

        logger.info("Subscription activated from payment", extra={
            "payment_id": payment_id,
            "user_id": profile.id,
            "subscription_id": subscription.id if subscription else None,
            "previous_status": existing.status if existing else None,
        })

        return ReconciliationResult(
            payment_id=payment_id,
            outcome=NotificationOutcome.APPLIED,
            subscription_id=subscription.id if subscription else None,
            user_id=profile.id,
        )
