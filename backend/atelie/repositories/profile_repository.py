"""
Profile repository: identity lookups for the entitlement store.
"""

import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from atelie.models.profile import Profile, ProfileRole, normalize_email

logger = logging.getLogger(__name__)


class ProfileRepository:
    """Repository for profile data access."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_by_id(self, user_id: str) -> Optional[Profile]:
        return self.db.query(Profile).filter(Profile.id == user_id).first()

    def find_by_email(self, email: str) -> Optional[Profile]:
        """
        Case-insensitive exact match on email.

        Args:
            email: Email as received (e.g. payer email from Mercado Pago)

        Returns:
            Profile if found, None otherwise
        """
        if not email or not email.strip():
            return None
        return self.db.query(Profile).filter(
            func.lower(Profile.email) == normalize_email(email)
        ).first()

    def get_ceramista(self, user_id: str) -> Optional[Profile]:
        """Get a profile only if it belongs to a ceramista."""
        return self.db.query(Profile).filter(
            Profile.id == user_id,
            Profile.role == ProfileRole.CERAMISTA.value,
        ).first()

    def create(
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
        Add a profile to the session. Does not commit.
        """
        profile = Profile(
            id=user_id,
            email=normalize_email(email),
            display_name=display_name,
            role=role.value,
        )
        if role == ProfileRole.CERAMISTA:
            profile.bio = bio
            profile.city = city
            profile.instagram = instagram
            profile.whatsapp = whatsapp
        self.db.add(profile)
        return profile
