"""
Subscription model for ceramista plans.

CRITICAL: One subscription per user. The row is keyed (unique) on user_id
so the payment webhook can upsert it idempotently.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, String, DateTime, Enum as SAEnum, ForeignKey, Index
from sqlalchemy.orm import relationship

from atelie.models.base import Base, TimestampMixin, generate_uuid, ensure_utc


class SubscriptionStatus(str, Enum):
    """Subscription status values."""
    PENDING = "pending"    # Signed up, no approved payment yet
    ACTIVE = "active"      # Approved payment, dashboard unlocked
    CANCELED = "canceled"  # Cancelled by the ceramista


# Allowed status transitions. ACTIVE -> ACTIVE covers redelivery and renewal.
VALID_TRANSITIONS = {
    SubscriptionStatus.PENDING.value: {SubscriptionStatus.ACTIVE.value},
    SubscriptionStatus.ACTIVE.value: {
        SubscriptionStatus.ACTIVE.value,
        SubscriptionStatus.CANCELED.value,
    },
    SubscriptionStatus.CANCELED.value: {SubscriptionStatus.ACTIVE.value},
}


def is_valid_transition(current_status: str, new_status: str) -> bool:
    return new_status in VALID_TRANSITIONS.get(current_status, set())


def is_entitled(status: Optional[str], period_end: Optional[datetime]) -> bool:
    """
    Status `active` with a period that has not ended. An elapsed period
    needs a new payment. Rows without a period end (granted by hand) stay
    entitled.
    """
    if status != SubscriptionStatus.ACTIVE.value:
        return False
    return period_end is None or datetime.now(timezone.utc) < period_end


class Subscription(Base, TimestampMixin):
    """
    Tracks the plan status for each ceramista.

    Status is granted by the Mercado Pago webhook and changed by the
    ceramista through cancel/reactivate.
    """

    __tablename__ = "subscriptions"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )

    user_id = Column(
        String(64),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        comment="One subscription per user; upsert key"
    )

    status = Column(
        SAEnum("pending", "active", "canceled", name="subscription_status"),
        default=SubscriptionStatus.PENDING.value,
        nullable=False,
        index=True,
    )

    external_reference = Column(
        String(64),
        nullable=True,
        comment="Mercado Pago payment id that granted the current period"
    )
    plan_id = Column(String(64), nullable=False)

    current_period_end = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="End of the paid period"
    )
    activated_on = Column(DateTime(timezone=True), nullable=True)
    canceled_on = Column(DateTime(timezone=True), nullable=True)

    profile = relationship("Profile", back_populates="subscription")

    __table_args__ = (
        Index("ix_subscriptions_external_reference", "external_reference"),
    )

    def __repr__(self) -> str:
        return f"<Subscription(id={self.id}, user_id={self.user_id}, status={self.status})>"

    @property
    def is_active(self) -> bool:
        """Active subscriptions unlock the ceramista dashboard until the period ends."""
        return is_entitled(self.status, self.period_end_utc)

    @property
    def period_end_utc(self):
        return ensure_utc(self.current_period_end)

    @property
    def has_paid_time_left(self) -> bool:
        """True while the last paid period has not ended."""
        period_end = self.period_end_utc
        if period_end is None:
            return False
        return datetime.now(timezone.utc) < period_end
