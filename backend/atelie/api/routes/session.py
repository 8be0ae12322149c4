"""
Session destination route.

Clients call this after login and on every protected-view entry instead of
reading a cached user object.
"""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from atelie.api.dependencies.guards import get_guard_decision
from atelie.services.session_guard import GuardDecision

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/session", tags=["session"])


class DestinationResponse(BaseModel):
    """Where the caller should go next."""
    user_id: str
    role: str
    destination: str
    profile: dict


@router.get("/destination", response_model=DestinationResponse)
async def get_destination(decision: GuardDecision = Depends(get_guard_decision)):
    """
    Resolve the caller's destination: catalog, subscribe or dashboard.

    Returns 404 profile_not_found if the identity has not signed up yet.
    """
    return DestinationResponse(
        user_id=decision.profile.id,
        role=decision.profile.role,
        destination=decision.destination.value,
        profile=asdict(decision.profile),
    )
