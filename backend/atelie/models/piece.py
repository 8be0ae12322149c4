"""
Piece model: a ceramic piece listed by a ceramista.
"""

from enum import Enum

from sqlalchemy import Column, String, Integer, Text, Enum as SAEnum, ForeignKey, Index
from sqlalchemy.orm import relationship

from atelie.models.base import Base, TimestampMixin, generate_uuid


class PieceStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"  # Visible in the public catalog
    SOLD = "sold"


class PieceAvailability(str, Enum):
    IN_STOCK = "em_estoque"
    MADE_TO_ORDER = "sob_encomenda"


AVAILABILITY_LABELS = {
    PieceAvailability.IN_STOCK.value: "Pronta entrega",
    PieceAvailability.MADE_TO_ORDER.value: "Sob encomenda",
}


# Statuses reachable through the public piece page
PUBLIC_PIECE_STATUSES = (PieceStatus.ACTIVE.value, PieceStatus.SOLD.value)


class Piece(Base, TimestampMixin):
    __tablename__ = "pieces"

    id = Column(String(36), primary_key=True, default=generate_uuid)

    ceramista_id = Column(
        String(64),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title = Column(String(255), nullable=False)
    slug = Column(String(300), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    price_cents = Column(Integer, nullable=False)
    image_url = Column(Text, nullable=True)

    status = Column(
        SAEnum("draft", "active", "sold", name="piece_status"),
        nullable=False,
        default=PieceStatus.DRAFT.value,
    )

    availability = Column(
        SAEnum("em_estoque", "sob_encomenda", name="piece_availability"),
        nullable=False,
        default=PieceAvailability.IN_STOCK.value,
    )
    quantity = Column(Integer, nullable=True, comment="Units in stock (em_estoque only)")
    delivery_days = Column(Integer, nullable=True, comment="Lead time (sob_encomenda only)")

    # Ceramista overrides; generated from the piece when null
    instagram_text = Column(Text, nullable=True)
    whatsapp_text = Column(Text, nullable=True)

    ceramista = relationship("Profile", back_populates="pieces")

    __table_args__ = (
        Index("ix_pieces_ceramista_status", "ceramista_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Piece(id={self.id}, slug={self.slug}, status={self.status})>"
