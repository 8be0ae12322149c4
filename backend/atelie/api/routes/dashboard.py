"""
Ceramista dashboard summary.

Only ceramistas inside a paid period reach the dashboard; everyone else gets
the same 402/403 as the other entitlement-gated routes.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from atelie.api.dependencies.guards import require_active_subscription
from atelie.database.session import get_db_session
from atelie.services.catalog_service import CatalogService
from atelie.services.session_guard import GuardDecision

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


class PieceCounts(BaseModel):
    total: int
    active: int
    draft: int
    sold: int


class DashboardResponse(BaseModel):
    display_name: str
    subscription_status: Optional[str]
    current_period_end: Optional[datetime]
    pieces: PieceCounts


@router.get("", response_model=DashboardResponse)
async def get_dashboard(
    decision: GuardDecision = Depends(require_active_subscription),
    db_session: Session = Depends(get_db_session),
):
    """Piece counters and plan status for the caller."""
    profile = decision.profile
    summary = CatalogService(db_session).summarize(profile.id)
    return DashboardResponse(
        display_name=profile.display_name,
        subscription_status=profile.subscription_status,
        current_period_end=profile.current_period_end,
        pieces=PieceCounts(
            total=summary.total,
            active=summary.active,
            draft=summary.draft,
            sold=summary.sold,
        ),
    )
