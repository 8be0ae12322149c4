"""
Catalog service: pieces, unique public slugs and share texts.

Orchestrates:
- Piece creation with a slug derived from the title
- Owner-only piece updates (status, price, availability, share texts)
- Share texts for Instagram and WhatsApp
- Dashboard piece counts
"""

import logging
import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Set

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from atelie.config import Settings, get_settings
from atelie.models.base import generate_uuid
from atelie.models.piece import Piece, PieceStatus, PieceAvailability, AVAILABILITY_LABELS
from atelie.repositories.piece_repository import PieceRepository

logger = logging.getLogger(__name__)

MAX_SLUG_LENGTH = 80
MAX_SLUG_ATTEMPTS = 5

UPDATABLE_FIELDS = frozenset({
    "title",
    "description",
    "price_cents",
    "image_url",
    "status",
    "availability",
    "quantity",
    "delivery_days",
    "instagram_text",
    "whatsapp_text",
})


def slugify(title: str) -> str:
    """
    Lower-case ASCII slug: "Vaso Azul Nº 2" -> "vaso-azul-no-2".
    """
    normalized = unicodedata.normalize("NFKD", title).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug[:MAX_SLUG_LENGTH].rstrip("-") or "peca"


def format_brl(cents: int) -> str:
    """4990 -> "R$ 49,90", 123456 -> "R$ 1.234,56"."""
    reais, centavos = divmod(cents, 100)
    return f"R$ {reais:,}".replace(",", ".") + f",{centavos:02d}"


@dataclass(frozen=True)
class ShareTexts:
    url: str
    instagram_text: str
    whatsapp_text: str


def _availability_line(piece: Piece) -> str:
    label = AVAILABILITY_LABELS.get(piece.availability, "")
    if piece.availability == PieceAvailability.IN_STOCK.value and piece.quantity:
        unit = "unidade disponível" if piece.quantity == 1 else "unidades disponíveis"
        return f"{label}: {piece.quantity} {unit}"
    if piece.availability == PieceAvailability.MADE_TO_ORDER.value and piece.delivery_days:
        return f"{label}: prazo de entrega de {piece.delivery_days} dias"
    return label


def build_share_texts(piece: Piece, ceramista_name: str, site_url: str) -> ShareTexts:
    """
    Share link and ready-to-paste texts for a piece.

    Texts stored on the piece win over the generated ones.
    """
    url = f"{site_url}/peca/{piece.slug}"
    price = format_brl(piece.price_cents)
    availability = _availability_line(piece)

    instagram_lines = [piece.title]
    if piece.description:
        instagram_lines += ["", piece.description]
    instagram_lines += [
        "",
        f"{price} | {availability}",
        f"Peça feita à mão por {ceramista_name}.",
        "",
        f"Link: {url}",
        "",
        "#ceramica #feitoamao #ceramicaartesanal",
    ]
    whatsapp_text = (
        f"Olá! Conheça *{piece.title}* de {ceramista_name}.\n"
        f"{price} ({availability})\n"
        f"{url}"
    )

    return ShareTexts(
        url=url,
        instagram_text=piece.instagram_text or "\n".join(instagram_lines),
        whatsapp_text=piece.whatsapp_text or whatsapp_text,
    )


@dataclass(frozen=True)
class PieceSummary:
    """Dashboard counters for one ceramista."""
    total: int
    active: int
    draft: int
    sold: int


class CatalogError(Exception):
    """Base exception for catalog errors."""
    pass


class PieceNotFoundError(CatalogError):
    pass


class PieceNotOwnedError(CatalogError):
    pass


def _normalize_availability(piece: Piece) -> None:
    # Stock counts only apply to ready pieces, lead times only to commissions
    if piece.availability == PieceAvailability.IN_STOCK.value:
        piece.delivery_days = None
    else:
        piece.quantity = None


class CatalogService:

    def __init__(self, db_session: Session, settings: Optional[Settings] = None):
        self.db = db_session
        self.settings = settings or get_settings()
        self.pieces = PieceRepository(db_session)

    def _slug_candidates(self, title: str) -> Iterator[str]:
        base = slugify(title)
        yield base
        suffix = 2
        while True:
            yield f"{base}-{suffix}"
            suffix += 1

    def _unique_slug(self, title: str, taken: Set[str]) -> str:
        for slug in self._slug_candidates(title):
            if slug not in taken and not self.pieces.slug_exists(slug):
                return slug

    def create_piece(
        self,
        ceramista_id: str,
        title: str,
        price_cents: int,
        description: Optional[str] = None,
        image_url: Optional[str] = None,
        status: PieceStatus = PieceStatus.ACTIVE,
        availability: PieceAvailability = PieceAvailability.IN_STOCK,
        quantity: Optional[int] = None,
        delivery_days: Optional[int] = None,
        instagram_text: Optional[str] = None,
        whatsapp_text: Optional[str] = None,
    ) -> Piece:
        """
        Create a piece with a unique slug.

        A concurrent create can claim the same slug between the existence
        check and the insert; the insert is then retried with the next
        candidate.

        Raises:
            IntegrityError: No free slug after MAX_SLUG_ATTEMPTS inserts
        """
        taken: Set[str] = set()
        for attempt in range(1, MAX_SLUG_ATTEMPTS + 1):
            slug = self._unique_slug(title, taken)
            piece = Piece(
                id=generate_uuid(),
                ceramista_id=ceramista_id,
                title=title,
                slug=slug,
                description=description,
                price_cents=price_cents,
                image_url=image_url,
                status=status.value,
                availability=availability.value,
                quantity=quantity,
                delivery_days=delivery_days,
                instagram_text=instagram_text,
                whatsapp_text=whatsapp_text,
            )
            _normalize_availability(piece)
            try:
                piece = self.pieces.create(piece)
                break
            except IntegrityError:
                self.db.rollback()
                logger.warning("Slug taken by a concurrent create, retrying", extra={
                    "ceramista_id": ceramista_id,
                    "slug": slug,
                    "attempt": attempt,
                })
                if attempt == MAX_SLUG_ATTEMPTS:
                    raise
                taken.add(slug)

        logger.info("Piece created", extra={
            "ceramista_id": ceramista_id,
            "piece_id": piece.id,
            "slug": piece.slug,
        })
        return piece

    def update_piece(self, ceramista_id: str, piece_id: str, changes: Dict[str, Any]) -> Piece:
        """
        Apply changes to one of the ceramista's pieces.

        The slug is kept when the title changes so shared links stay valid.

        Raises:
            ValueError: changes contains fields that cannot be updated
            PieceNotFoundError: No piece with that id
            PieceNotOwnedError: The piece belongs to another ceramista
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown piece fields: {sorted(unknown)}")

        piece = self.pieces.get_by_id(piece_id)
        if piece is None:
            raise PieceNotFoundError(piece_id)
        if piece.ceramista_id != ceramista_id:
            logger.warning("Piece update by non-owner refused", extra={
                "ceramista_id": ceramista_id,
                "piece_id": piece_id,
            })
            raise PieceNotOwnedError(piece_id)

        old_status = piece.status
        for field, value in changes.items():
            if isinstance(value, (PieceStatus, PieceAvailability)):
                value = value.value
            setattr(piece, field, value)
        _normalize_availability(piece)
        piece = self.pieces.save(piece)

        logger.info("Piece updated", extra={
            "ceramista_id": ceramista_id,
            "piece_id": piece.id,
            "fields": sorted(changes),
            "old_status": old_status,
            "new_status": piece.status,
        })
        return piece

    def share_texts(self, piece: Piece) -> ShareTexts:
        return build_share_texts(piece, piece.ceramista.display_name, self.settings.public_site_url)

    def summarize(self, ceramista_id: str) -> PieceSummary:
        counts = self.pieces.count_by_status(ceramista_id)
        return PieceSummary(
            total=sum(counts.values()),
            active=counts[PieceStatus.ACTIVE.value],
            draft=counts[PieceStatus.DRAFT.value],
            sold=counts[PieceStatus.SOLD.value],
        )
