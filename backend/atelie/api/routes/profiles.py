"""
Profile routes: signup, own profile and public ceramista pages.
"""

import logging
from dataclasses import asdict
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from atelie.api.dependencies.guards import require_profile
from atelie.api.routes.pieces import PieceResponse
from atelie.auth.session_token import SessionIdentity, get_current_identity
from atelie.database.session import get_db_session
from atelie.models.profile import ProfileRole
from atelie.services.profile_service import (
    ProfileService,
    ProfileAlreadyExistsError,
    CeramistaNotFoundError,
)
from atelie.services.session_guard import GuardDecision, resolve_destination, SessionGuard

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["profiles"])


class SignUpRequest(BaseModel):
    """Profile signup for the authenticated identity."""
    display_name: str = Field(..., min_length=1, max_length=255)
    role: ProfileRole
    bio: Optional[str] = Field(None, max_length=2000)
    city: Optional[str] = Field(None, max_length=255)
    instagram: Optional[str] = Field(None, max_length=255)
    whatsapp: Optional[str] = Field(None, max_length=32)


class ProfileResponse(BaseModel):
    """Tagged profile: ceramista fields are present only for ceramistas."""
    id: str
    email: str
    display_name: str
    role: str
    subscription_status: Optional[str] = None
    current_period_end: Optional[datetime] = None
    bio: Optional[str] = None
    city: Optional[str] = None
    instagram: Optional[str] = None
    whatsapp: Optional[str] = None


class SignUpResponse(BaseModel):
    profile: ProfileResponse
    destination: str


class PublicCeramistaResponse(BaseModel):
    id: str
    display_name: str
    bio: Optional[str]
    city: Optional[str]
    instagram: Optional[str]
    whatsapp: Optional[str]
    pieces: List[PieceResponse]


@router.post("/profiles", response_model=SignUpResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(
    request: SignUpRequest,
    identity: SessionIdentity = Depends(get_current_identity),
    db_session: Session = Depends(get_db_session),
):
    """
    Create the caller's profile. Email comes from the session token.
    """
    if not identity.email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Session token carries no email"
        )

    service = ProfileService(db_session)
    try:
        service.sign_up(
            user_id=identity.user_id,
            email=identity.email,
            display_name=request.display_name,
            role=request.role,
            bio=request.bio,
            city=request.city,
            instagram=request.instagram,
            whatsapp=request.whatsapp,
        )
    except ProfileAlreadyExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    typed = SessionGuard(db_session).load_profile(identity.user_id)
    return SignUpResponse(
        profile=ProfileResponse(**asdict(typed)),
        destination=resolve_destination(typed).value,
    )


@router.get("/profiles/me", response_model=ProfileResponse, response_model_exclude_none=True)
async def get_my_profile(decision: GuardDecision = Depends(require_profile)):
    return ProfileResponse(**asdict(decision.profile))


@router.get("/ceramistas/{ceramista_id}", response_model=PublicCeramistaResponse)
async def get_public_ceramista(
    ceramista_id: str,
    db_session: Session = Depends(get_db_session),
):
    """Public ceramista page with active pieces. No authentication."""
    try:
        page = ProfileService(db_session).get_public_ceramista_page(ceramista_id)
    except CeramistaNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ceramista not found")

    return PublicCeramistaResponse(
        id=page.profile.id,
        display_name=page.profile.display_name,
        bio=page.profile.bio,
        city=page.profile.city,
        instagram=page.profile.instagram,
        whatsapp=page.profile.whatsapp,
        pieces=[PieceResponse.from_piece(piece) for piece in page.pieces],
    )
