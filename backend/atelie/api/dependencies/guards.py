"""
Role and entitlement guard dependencies.

Each dependency evaluates the SessionGuard against current store state for
the authenticated identity. Nothing is cached between requests.
"""

import logging
from typing import Callable, Iterable

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from atelie.auth.session_token import SessionIdentity, get_current_identity
from atelie.database.session import get_db_session
from atelie.services.session_guard import (
    Destination,
    GuardDecision,
    GuardError,
    SessionGuard,
)

logger = logging.getLogger(__name__)


def get_guard_decision(
    identity: SessionIdentity = Depends(get_current_identity),
    db_session: Session = Depends(get_db_session),
) -> GuardDecision:
    """
    Evaluate the guard for the caller.

    Raises 404 when the identity has not signed up yet, so clients can send
    the user to signup.
    """
    try:
        return SessionGuard(db_session).evaluate(identity.user_id)
    except GuardError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="profile_not_found",
        )


def create_destination_check(
    allowed: Iterable[Destination],
    denied_status: int,
    denied_detail: str,
) -> Callable:
    """
    Factory for dependencies that admit only some destinations.

    Args:
        allowed: Destinations that may enter
        denied_status: HTTP status for everyone else
        denied_detail: Error detail for everyone else

    Returns:
        A FastAPI dependency returning the GuardDecision when admitted
    """
    allowed = frozenset(allowed)

    def check_destination(decision: GuardDecision = Depends(get_guard_decision)) -> GuardDecision:
        if decision.destination not in allowed:
            logger.info("Guard denied access", extra={
                "user_id": decision.profile.id,
                "destination": decision.destination.value,
                "required": sorted(d.value for d in allowed),
            })
            raise HTTPException(status_code=denied_status, detail=denied_detail)
        return decision

    return check_destination


require_profile = get_guard_decision

require_ceramista = create_destination_check(
    allowed=(Destination.SUBSCRIBE, Destination.DASHBOARD),
    denied_status=status.HTTP_403_FORBIDDEN,
    denied_detail="ceramista_only",
)


def require_active_subscription(
    decision: GuardDecision = Depends(require_ceramista),
) -> GuardDecision:
    """Ceramista with an active plan (compradores get 403 first)."""
    if decision.destination != Destination.DASHBOARD:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail="subscription_required",
        )
    return decision
