"""
Database models for profiles, subscriptions, payment notifications and pieces.

Importing this package registers every table on Base.metadata.
"""

from atelie.models.profile import Profile, ProfileRole
from atelie.models.subscription import Subscription, SubscriptionStatus
from atelie.models.payment_notification import PaymentNotification, NotificationOutcome
from atelie.models.piece import Piece, PieceStatus, PieceAvailability

__all__ = [
    "Profile",
    "ProfileRole",
    "Subscription",
    "SubscriptionStatus",
    "PaymentNotification",
    "NotificationOutcome",
    "Piece",
    "PieceStatus",
    "PieceAvailability",
]
