"""
Subscription self-service routes.

All routes require a ceramista session. Activation itself only happens
through the Mercado Pago webhook.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from atelie.api.dependencies.guards import require_ceramista
from atelie.api.dependencies.payments import get_payment_client
from atelie.database.session import get_db_session
from atelie.integrations.mercadopago.client import MercadoPagoClient
from atelie.repositories.profile_repository import ProfileRepository
from atelie.services.session_guard import GuardDecision
from atelie.services.subscription_service import (
    SubscriptionService,
    SubscriptionInfo,
    SubscriptionNotFoundError,
    InvalidTransitionError,
    PaymentRequiredError,
    CheckoutUnavailableError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subscription", tags=["subscription"])


class SubscriptionResponse(BaseModel):
    """Current subscription information."""
    subscription_id: Optional[str]
    plan_id: str
    status: Optional[str]
    is_active: bool
    current_period_end: Optional[str]
    canceled_on: Optional[str] = None

    @classmethod
    def from_info(cls, info: SubscriptionInfo) -> "SubscriptionResponse":
        return cls(
            subscription_id=info.subscription_id,
            plan_id=info.plan_id,
            status=info.status,
            is_active=info.is_active,
            current_period_end=info.current_period_end.isoformat() if info.current_period_end else None,
            canceled_on=info.canceled_on.isoformat() if info.canceled_on else None,
        )


class CheckoutResponse(BaseModel):
    """Response with checkout URL."""
    checkout_url: str
    preference_id: str
    sandbox_checkout_url: Optional[str] = None


def _transition_error(e: InvalidTransitionError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "error": "invalid_transition",
            "current_status": e.current_status,
            "requested_status": e.new_status,
        },
    )


@router.get("", response_model=SubscriptionResponse)
async def get_subscription(
    decision: GuardDecision = Depends(require_ceramista),
    db_session: Session = Depends(get_db_session),
):
    info = SubscriptionService(db_session).get_subscription_info(decision.profile.id)
    return SubscriptionResponse.from_info(info)


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    decision: GuardDecision = Depends(require_ceramista),
    db_session: Session = Depends(get_db_session),
    payment_client: MercadoPagoClient = Depends(get_payment_client),
):
    """
    Create a Mercado Pago checkout for the plan.

    The subscription becomes active when the approved-payment webhook
    arrives, not when this call returns.
    """
    profile = ProfileRepository(db_session).get_by_id(decision.profile.id)
    service = SubscriptionService(db_session)
    try:
        result = await service.create_checkout(profile, payment_client)
    except InvalidTransitionError as e:
        raise _transition_error(e)
    except CheckoutUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return CheckoutResponse(
        checkout_url=result.checkout_url,
        preference_id=result.preference_id,
        sandbox_checkout_url=result.sandbox_checkout_url,
    )


@router.post("/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    decision: GuardDecision = Depends(require_ceramista),
    db_session: Session = Depends(get_db_session),
):
    service = SubscriptionService(db_session)
    try:
        service.cancel_subscription(decision.profile.id)
    except SubscriptionNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")
    except InvalidTransitionError as e:
        raise _transition_error(e)
    return SubscriptionResponse.from_info(service.get_subscription_info(decision.profile.id))


@router.post("/reactivate", response_model=SubscriptionResponse)
async def reactivate_subscription(
    decision: GuardDecision = Depends(require_ceramista),
    db_session: Session = Depends(get_db_session),
):
    """Reactivate within the paid period; afterwards a new checkout is needed."""
    service = SubscriptionService(db_session)
    try:
        service.reactivate_subscription(decision.profile.id)
    except SubscriptionNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")
    except InvalidTransitionError as e:
        raise _transition_error(e)
    except PaymentRequiredError as e:
        raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(e))
    return SubscriptionResponse.from_info(service.get_subscription_info(decision.profile.id))
