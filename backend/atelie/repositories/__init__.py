from atelie.repositories.profile_repository import ProfileRepository
from atelie.repositories.subscription_repository import SubscriptionRepository
from atelie.repositories.piece_repository import PieceRepository

__all__ = ["ProfileRepository", "SubscriptionRepository", "PieceRepository"]
