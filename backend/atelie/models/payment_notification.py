"""
PaymentNotification model: ledger of processed Mercado Pago notifications.

Mercado Pago delivers notifications at least once. An `applied` row marks a
payment as spent so redeliveries are recorded as duplicates; the other
outcomes let unreconcilable payments be reviewed by hand.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Column, String, DateTime, Index, func

from atelie.db_base import Base


class NotificationOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"  # Payment already applied by an earlier delivery
    IGNORED = "ignored"
    PROFILE_NOT_FOUND = "profile_not_found"
    MISSING_PAYER_EMAIL = "missing_payer_email"


MANUAL_REVIEW_OUTCOMES = (
    NotificationOutcome.PROFILE_NOT_FOUND.value,
    NotificationOutcome.MISSING_PAYER_EMAIL.value,
)


class PaymentNotification(Base):
    """One row per processed delivery (redeliveries add rows)."""

    __tablename__ = "payment_notifications"

    id = Column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    payment_id = Column(
        String(64),
        nullable=False,
        index=True,
        comment="Mercado Pago payment id"
    )

    payment_status = Column(String(32), nullable=True)
    payer_email = Column(String(320), nullable=True)

    outcome = Column(String(32), nullable=False, index=True)

    payload_hash = Column(
        String(64),
        nullable=True,
        comment="SHA-256 hash of payload for debugging"
    )

    processed_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    __table_args__ = (
        Index("idx_payment_notifications_outcome_processed", "outcome", "processed_at"),
    )

    def __repr__(self) -> str:
        return f"<PaymentNotification(payment_id={self.payment_id}, outcome={self.outcome})>"

    @property
    def needs_manual_review(self) -> bool:
        return self.outcome in MANUAL_REVIEW_OUTCOMES
