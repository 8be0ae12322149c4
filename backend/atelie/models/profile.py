"""
Profile model: one row per authenticated identity.

The profile id is the subject of the session token issued by the auth
backend. Email is stored lower-cased and is the match key for payment
processor payer emails.
"""

from enum import Enum

from sqlalchemy import Column, String, Text, Enum as SAEnum
from sqlalchemy.orm import relationship

from atelie.models.base import Base, TimestampMixin


class ProfileRole(str, Enum):
    """Marketplace roles."""
    CERAMISTA = "ceramista"  # Artisan seller, needs an active subscription
    COMPRADOR = "comprador"  # Buyer


def normalize_email(email: str) -> str:
    return email.strip().lower()


class Profile(Base, TimestampMixin):
    """
    Identity record for ceramistas and compradores.

    Ceramista-only public fields (bio, city, instagram, whatsapp) stay NULL
    for compradores.
    """

    __tablename__ = "profiles"

    id = Column(
        String(64),
        primary_key=True,
        comment="Auth subject (sub claim of the session token)"
    )
    email = Column(
        String(320),
        nullable=False,
        unique=True,
        comment="Lower-cased email, matched against payer email"
    )
    display_name = Column(String(255), nullable=False)
    role = Column(
        SAEnum(
            ProfileRole.CERAMISTA.value,
            ProfileRole.COMPRADOR.value,
            name="profile_role"
        ),
        nullable=False,
        index=True,
    )

    # Public ceramista page
    bio = Column(Text, nullable=True)
    city = Column(String(255), nullable=True)
    instagram = Column(String(255), nullable=True)
    whatsapp = Column(String(32), nullable=True)

    subscription = relationship(
        "Subscription",
        back_populates="profile",
        uselist=False,
    )
    pieces = relationship(
        "Piece",
        back_populates="ceramista",
        lazy="dynamic",
    )

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, role={self.role})>"

    @property
    def is_ceramista(self) -> bool:
        return self.role == ProfileRole.CERAMISTA.value
