"""
Piece repository for the public catalog and the ceramista's own listings.
"""

import logging
from typing import Dict, Optional, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from atelie.models.piece import Piece, PieceStatus, PUBLIC_PIECE_STATUSES

logger = logging.getLogger(__name__)


class PieceRepository:
    """Repository for piece data access."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def list_public(self, limit: int = 50, offset: int = 0) -> List[Piece]:
        """Active pieces, newest first."""
        return self.db.query(Piece).filter(
            Piece.status == PieceStatus.ACTIVE.value
        ).order_by(
            Piece.created_at.desc(), Piece.id
        ).offset(offset).limit(limit).all()

    def list_active_for_ceramista(self, ceramista_id: str) -> List[Piece]:
        return self.db.query(Piece).filter(
            Piece.ceramista_id == ceramista_id,
            Piece.status == PieceStatus.ACTIVE.value,
        ).order_by(Piece.created_at.desc()).all()

    def list_for_ceramista(self, ceramista_id: str) -> List[Piece]:
        """All pieces of a ceramista, any status."""
        return self.db.query(Piece).filter(
            Piece.ceramista_id == ceramista_id
        ).order_by(Piece.created_at.desc()).all()

    def get_public_by_slug(self, slug: str) -> Optional[Piece]:
        return self.db.query(Piece).filter(
            Piece.slug == slug,
            Piece.status.in_(PUBLIC_PIECE_STATUSES),
        ).first()

    def get_by_id(self, piece_id: str) -> Optional[Piece]:
        return self.db.query(Piece).filter(Piece.id == piece_id).first()

    def count_by_status(self, ceramista_id: str) -> Dict[str, int]:
        """Piece counts per status for one ceramista. Missing statuses count 0."""
        rows = self.db.query(Piece.status, func.count(Piece.id)).filter(
            Piece.ceramista_id == ceramista_id
        ).group_by(Piece.status).all()

        counts = {status.value: 0 for status in PieceStatus}
        counts.update({status: count for status, count in rows})
        return counts

    def slug_exists(self, slug: str) -> bool:
        return self.db.query(Piece.id).filter(Piece.slug == slug).first() is not None

    def create(self, piece: Piece) -> Piece:
        self.db.add(piece)
        self.db.commit()
        self.db.refresh(piece)
        return piece

    def save(self, piece: Piece) -> Piece:
        """Commit pending changes to a loaded piece."""
        self.db.commit()
        self.db.refresh(piece)
        return piece
