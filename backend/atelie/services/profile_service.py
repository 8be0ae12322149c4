"""
Profile signup and public ceramista pages.
"""

import logging
from dataclasses import dataclass
from typing import Optional, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from atelie.config import Settings, get_settings
from atelie.models.piece import Piece
from atelie.models.profile import Profile, ProfileRole
from atelie.repositories.piece_repository import PieceRepository
from atelie.repositories.profile_repository import ProfileRepository
from atelie.repositories.subscription_repository import SubscriptionRepository

logger = logging.getLogger(__name__)


class ProfileAlreadyExistsError(Exception):
    """The identity or its email already has a profile."""
    pass


class CeramistaNotFoundError(Exception):
    pass


@dataclass
class PublicCeramistaPage:
    profile: Profile
    pieces: List[Piece]


class ProfileService:

    def __init__(self, db_session: Session, settings: Optional[Settings] = None):
        self.db = db_session
        self.settings = settings or get_settings()
        self.profiles = ProfileRepository(db_session)
        self.subscriptions = SubscriptionRepository(db_session)
        self.pieces = PieceRepository(db_session)

    def sign_up(
        self,
        user_id: str,
        email: str,
        display_name: str,
        role: ProfileRole,
        bio: Optional[str] = None,
        city: Optional[str] = None,
        instagram: Optional[str] = None,
        whatsapp: Optional[str] = None,
    ) -> Profile:
        """
        Create the profile for an authenticated identity.

        Ceramistas also get a pending subscription, the signup default the
        payment webhook later activates.

        Raises:
            ProfileAlreadyExistsError: If the id or email is taken
        """
        if self.profiles.get_by_id(user_id) is not None:
            raise ProfileAlreadyExistsError("Profile already exists")
        if self.profiles.find_by_email(email) is not None:
            raise ProfileAlreadyExistsError("Email already registered")

        profile = self.profiles.create(
            user_id=user_id,
            email=email,
            display_name=display_name,
            role=role,
            bio=bio,
            city=city,
            instagram=instagram,
            whatsapp=whatsapp,
        )
        if role == ProfileRole.CERAMISTA:
            self.subscriptions.create_pending(user_id, self.settings.subscription_plan_id)

        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("Concurrent signup collided", extra={"user_id": user_id})
            raise ProfileAlreadyExistsError("Profile already exists") from e

        logger.info("Profile created", extra={"user_id": user_id, "role": role.value})
        return profile

    def get_public_ceramista_page(self, ceramista_id: str) -> PublicCeramistaPage:
        """
        Public ceramista page: profile plus its active pieces.

        Raises:
            CeramistaNotFoundError: If the id is not a ceramista
        """
        profile = self.profiles.get_ceramista(ceramista_id)
        if profile is None:
            raise CeramistaNotFoundError(ceramista_id)
        return PublicCeramistaPage(
            profile=profile,
            pieces=self.pieces.list_active_for_ceramista(ceramista_id),
        )
