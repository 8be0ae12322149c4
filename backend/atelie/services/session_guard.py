"""
Session/role guard.

Decides which view an authenticated identity may enter. The decision is a
pure function of the profile and subscription rows; SessionGuard reloads
both on every evaluation so a webhook reconciliation is visible on the next
request without any invalidation step.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from sqlalchemy.orm import Session

from atelie.models.profile import Profile, ProfileRole
from atelie.models.subscription import Subscription, is_entitled
from atelie.repositories.profile_repository import ProfileRepository
from atelie.repositories.subscription_repository import SubscriptionRepository

logger = logging.getLogger(__name__)


class Destination(str, Enum):
    CATALOG = "catalog"
    SUBSCRIBE = "subscribe"
    DASHBOARD = "dashboard"


@dataclass(frozen=True)
class CeramistaProfile:
    """Ceramista view of a profile."""
    id: str
    email: str
    display_name: str
    subscription_status: Optional[str]
    current_period_end: Optional[datetime] = None
    bio: Optional[str] = None
    city: Optional[str] = None
    instagram: Optional[str] = None
    whatsapp: Optional[str] = None
    role: str = ProfileRole.CERAMISTA.value

    @property
    def has_active_plan(self) -> bool:
        return is_entitled(self.subscription_status, self.current_period_end)


@dataclass(frozen=True)
class CompradorProfile:
    """Comprador view of a profile."""
    id: str
    email: str
    display_name: str
    role: str = ProfileRole.COMPRADOR.value


TypedProfile = Union[CeramistaProfile, CompradorProfile]


class GuardError(Exception):
    """Raised when the guard cannot evaluate an identity."""

    def __init__(self, message: str, user_id: str):
        super().__init__(message)
        self.user_id = user_id


def to_typed_profile(profile: Profile, subscription: Optional[Subscription]) -> TypedProfile:
    """Project a profile row onto the variant matching its role."""
    if profile.role == ProfileRole.CERAMISTA.value:
        return CeramistaProfile(
            id=profile.id,
            email=profile.email,
            display_name=profile.display_name,
            subscription_status=subscription.status if subscription else None,
            current_period_end=subscription.period_end_utc if subscription else None,
            bio=profile.bio,
            city=profile.city,
            instagram=profile.instagram,
            whatsapp=profile.whatsapp,
        )
    return CompradorProfile(
        id=profile.id,
        email=profile.email,
        display_name=profile.display_name,
    )


def resolve_destination(profile: TypedProfile) -> Destination:
    """
    Compute the destination view for a profile.

    - comprador -> catalog, whatever the subscription fields say
    - ceramista without an active plan, or whose paid period ended -> subscribe
    - ceramista with an active plan -> dashboard
    """
    if isinstance(profile, CompradorProfile):
        return Destination.CATALOG
    if profile.has_active_plan:
        return Destination.DASHBOARD
    return Destination.SUBSCRIBE


@dataclass(frozen=True)
class GuardDecision:
    profile: TypedProfile
    destination: Destination


class SessionGuard:
    """Evaluates destinations against current store state. Never caches."""

    def __init__(self, db_session: Session):
        self.db = db_session
        self.profiles = ProfileRepository(db_session)
        self.subscriptions = SubscriptionRepository(db_session)

    def load_profile(self, user_id: str) -> TypedProfile:
        """
        Load the typed profile for user_id from the store.

        Raises:
            GuardError: If the identity has no profile yet
        """
        # Rows loaded earlier in this session may predate a webhook commit
        self.db.expire_all()
        profile = self.profiles.get_by_id(user_id)
        if profile is None:
            raise GuardError("Profile not found", user_id=user_id)
        subscription = None
        if profile.role == ProfileRole.CERAMISTA.value:
            subscription = self.subscriptions.get_for_user(user_id)
        return to_typed_profile(profile, subscription)

    def evaluate(self, user_id: str) -> GuardDecision:
        typed = self.load_profile(user_id)
        destination = resolve_destination(typed)
        logger.debug("Guard evaluated", extra={
            "user_id": user_id,
            "role": typed.role,
            "destination": destination.value,
        })
        return GuardDecision(profile=typed, destination=destination)
