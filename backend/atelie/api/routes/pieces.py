"""
Catalog routes: public listing, public piece pages with share texts, and
the ceramista's own piece listing, creation and updates.
"""

import logging
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from atelie.api.dependencies.guards import require_active_subscription, require_ceramista
from atelie.database.session import get_db_session
from atelie.models.piece import Piece, PieceStatus, PieceAvailability
from atelie.repositories.piece_repository import PieceRepository
from atelie.services.catalog_service import (
    CatalogService,
    PieceNotFoundError,
    PieceNotOwnedError,
    ShareTexts,
)
from atelie.services.session_guard import GuardDecision

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pieces", tags=["catalog"])


class PieceResponse(BaseModel):
    id: str
    ceramista_id: str
    title: str
    slug: str
    description: Optional[str]
    price_cents: int
    image_url: Optional[str]
    status: str
    availability: str
    quantity: Optional[int]
    delivery_days: Optional[int]
    created_at: Optional[datetime]

    @classmethod
    def from_piece(cls, piece: Piece) -> "PieceResponse":
        return cls(
            id=piece.id,
            ceramista_id=piece.ceramista_id,
            title=piece.title,
            slug=piece.slug,
            description=piece.description,
            price_cents=piece.price_cents,
            image_url=piece.image_url,
            status=piece.status,
            availability=piece.availability,
            quantity=piece.quantity,
            delivery_days=piece.delivery_days,
            created_at=piece.created_at,
        )


class PieceDetailResponse(PieceResponse):
    """Piece with its share link and ready-to-paste texts."""
    share_url: str
    instagram_text: str
    whatsapp_text: str

    @classmethod
    def from_piece_with_texts(cls, piece: Piece, texts: ShareTexts) -> "PieceDetailResponse":
        return cls(
            **PieceResponse.from_piece(piece).model_dump(),
            share_url=texts.url,
            instagram_text=texts.instagram_text,
            whatsapp_text=texts.whatsapp_text,
        )


class PiecesListResponse(BaseModel):
    pieces: List[PieceResponse]


class CreatePieceRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    price_cents: int = Field(..., gt=0)
    description: Optional[str] = Field(None, max_length=5000)
    image_url: Optional[str] = None
    status: PieceStatus = PieceStatus.ACTIVE
    availability: PieceAvailability = PieceAvailability.IN_STOCK
    quantity: Optional[int] = Field(None, ge=1)
    delivery_days: Optional[int] = Field(None, ge=1, le=365)
    instagram_text: Optional[str] = Field(None, max_length=2200)
    whatsapp_text: Optional[str] = Field(None, max_length=4000)


class UpdatePieceRequest(BaseModel):
    """Partial update. Only the fields sent are changed."""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    price_cents: Optional[int] = Field(None, gt=0)
    description: Optional[str] = Field(None, max_length=5000)
    image_url: Optional[str] = None
    status: Optional[PieceStatus] = None
    availability: Optional[PieceAvailability] = None
    quantity: Optional[int] = Field(None, ge=1)
    delivery_days: Optional[int] = Field(None, ge=1, le=365)
    instagram_text: Optional[str] = Field(None, max_length=2200)
    whatsapp_text: Optional[str] = Field(None, max_length=4000)


# Columns that cannot be cleared by sending null
NON_NULLABLE_UPDATES = ("title", "price_cents", "status", "availability")


@router.get("", response_model=PiecesListResponse)
async def list_catalog(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db_session: Session = Depends(get_db_session),
):
    """Public catalog of active pieces, newest first."""
    pieces = PieceRepository(db_session).list_public(limit=limit, offset=offset)
    return PiecesListResponse(pieces=[PieceResponse.from_piece(p) for p in pieces])


@router.get("/mine", response_model=PiecesListResponse)
async def list_my_pieces(
    decision: GuardDecision = Depends(require_ceramista),
    db_session: Session = Depends(get_db_session),
):
    """All of the caller's pieces, any status."""
    pieces = PieceRepository(db_session).list_for_ceramista(decision.profile.id)
    return PiecesListResponse(pieces=[PieceResponse.from_piece(p) for p in pieces])


@router.post("", response_model=PieceDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_piece(
    request: CreatePieceRequest,
    decision: GuardDecision = Depends(require_active_subscription),
    db_session: Session = Depends(get_db_session),
):
    """Create a piece. Requires an active subscription."""
    service = CatalogService(db_session)
    piece = service.create_piece(
        ceramista_id=decision.profile.id,
        title=request.title,
        price_cents=request.price_cents,
        description=request.description,
        image_url=request.image_url,
        status=request.status,
        availability=request.availability,
        quantity=request.quantity,
        delivery_days=request.delivery_days,
        instagram_text=request.instagram_text,
        whatsapp_text=request.whatsapp_text,
    )
    return PieceDetailResponse.from_piece_with_texts(piece, service.share_texts(piece))


@router.patch("/{piece_id}", response_model=PieceDetailResponse)
async def update_piece(
    piece_id: str,
    request: UpdatePieceRequest,
    decision: GuardDecision = Depends(require_active_subscription),
    db_session: Session = Depends(get_db_session),
):
    """
    Update one of the caller's pieces: publish a draft, mark it sold,
    change price, availability or share texts.

    Returns 404 for unknown pieces and 403 for pieces of other ceramistas.
    """
    changes = request.model_dump(exclude_unset=True)
    cleared = [field for field in NON_NULLABLE_UPDATES if field in changes and changes[field] is None]
    if cleared:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": "field_required", "fields": cleared},
        )

    service = CatalogService(db_session)
    try:
        piece = service.update_piece(decision.profile.id, piece_id, changes)
    except PieceNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Piece not found")
    except PieceNotOwnedError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="piece_not_owned")

    return PieceDetailResponse.from_piece_with_texts(piece, service.share_texts(piece))


@router.get("/{slug}", response_model=PieceDetailResponse)
async def get_piece(slug: str, db_session: Session = Depends(get_db_session)):
    """Public piece page with share texts. Drafts are not visible."""
    piece = PieceRepository(db_session).get_public_by_slug(slug)
    if piece is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Piece not found")
    texts = CatalogService(db_session).share_texts(piece)
    return PieceDetailResponse.from_piece_with_texts(piece, texts)
